"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_path: str = "fuel_tracker.db"
    default_user_id: int = 1
    ui_tick_seconds: float = 1.0
    checkpoint_interval_seconds: float = 10.0
    recovery_window_hours: float = 24
    auto_suggest_window_hours: float = 12
    telegram_bot_token: str | None = None
    telegram_chat_id: int | None = None
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def telegram_enabled(settings: Settings) -> bool:
    """Reminders go to Telegram only when both token and chat are set."""
    return bool(settings.telegram_bot_token) and settings.telegram_chat_id is not None


def supabase_enabled(settings: Settings) -> bool:
    """Use the remote product catalog only when fully configured."""
    return bool(settings.supabase_url) and bool(settings.supabase_service_key)
