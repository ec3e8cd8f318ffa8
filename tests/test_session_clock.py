"""Tests for the session clock."""

import asyncio

import pytest

from fuel_tracker.services.clock import SessionClock
from tests.conftest import FakeMonotonic


def test_elapsed_is_derived_from_monotonic_source() -> None:
    monotonic = FakeMonotonic()
    clock = SessionClock(
        ui_interval_seconds=3600, checkpoint_interval_seconds=3600, monotonic=monotonic
    )

    async def scenario() -> tuple[int, int, int]:
        clock.start(lambda _: None, lambda _: None)
        monotonic.advance(65.7)
        running = clock.elapsed_seconds
        clock.stop()
        monotonic.advance(30)
        return running, clock.elapsed_seconds, int(clock.running)

    running, stopped, is_running = asyncio.run(scenario())

    assert running == 65
    assert stopped == 65
    assert is_running == 0


def test_resume_back_computes_start_instant() -> None:
    monotonic = FakeMonotonic()
    clock = SessionClock(
        ui_interval_seconds=3600, checkpoint_interval_seconds=3600, monotonic=monotonic
    )

    async def scenario() -> int:
        clock.start(lambda _: None, lambda _: None, already_elapsed_seconds=5400)
        monotonic.advance(10)
        elapsed = clock.elapsed_seconds
        clock.stop()
        return elapsed

    assert asyncio.run(scenario()) == 5410


def test_cadences_fire_and_stop() -> None:
    ui_ticks: list[int] = []
    checkpoint_ticks: list[int] = []
    clock = SessionClock(ui_interval_seconds=0.01, checkpoint_interval_seconds=0.05)

    async def on_checkpoint(elapsed: int) -> None:
        checkpoint_ticks.append(elapsed)

    async def scenario() -> None:
        clock.start(ui_ticks.append, on_checkpoint)
        await asyncio.sleep(0.18)
        clock.stop()
        counts = (len(ui_ticks), len(checkpoint_ticks))
        await asyncio.sleep(0.05)
        assert (len(ui_ticks), len(checkpoint_ticks)) == counts

    asyncio.run(scenario())

    assert len(ui_ticks) > len(checkpoint_ticks) >= 2


def test_failing_callback_does_not_stop_cadence() -> None:
    calls: list[int] = []

    def flaky(elapsed: int) -> None:
        calls.append(elapsed)
        raise RuntimeError("boom")

    clock = SessionClock(ui_interval_seconds=0.01, checkpoint_interval_seconds=3600)

    async def scenario() -> None:
        clock.start(flaky, lambda _: None)
        await asyncio.sleep(0.08)
        clock.stop()

    asyncio.run(scenario())

    assert len(calls) >= 2


def test_start_twice_is_rejected() -> None:
    clock = SessionClock(ui_interval_seconds=3600, checkpoint_interval_seconds=3600)

    async def scenario() -> None:
        clock.start(lambda _: None, lambda _: None)
        try:
            with pytest.raises(RuntimeError):
                clock.start(lambda _: None, lambda _: None)
        finally:
            clock.stop()
        clock.stop()

    asyncio.run(scenario())
