"""ASGI entrypoint for the fuel tracker API."""

from fuel_tracker.api.app import create_app
from fuel_tracker.containers import build_container

app = create_app(build_container())
