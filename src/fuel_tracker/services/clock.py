"""Session clock driving the UI and checkpoint cadences."""

import asyncio
import inspect
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Awaitable[None] | None]


@dataclass
class SessionClock:
    """Reports elapsed time and invokes two periodic callbacks.

    Elapsed time is always ``now - start_instant`` on a monotonic source, so a
    late tick still reports the correct value and drift never accumulates.
    The clock does not persist anything itself.
    """

    ui_interval_seconds: float = 1.0
    checkpoint_interval_seconds: float = 10.0
    monotonic: Callable[[], float] = time.monotonic
    _start_instant: float | None = field(default=None, init=False)
    _stopped_at: float | None = field(default=None, init=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def elapsed_seconds(self) -> int:
        """Whole seconds since the start instant, frozen once stopped."""
        if self._start_instant is None:
            return 0
        now = self._stopped_at if self._stopped_at is not None else self.monotonic()
        return max(0, math.floor(now - self._start_instant))

    def start(
        self,
        on_ui_tick: TickCallback,
        on_checkpoint_tick: TickCallback,
        already_elapsed_seconds: float = 0,
    ) -> None:
        """Start both cadences on the running event loop.

        ``already_elapsed_seconds`` back-computes the start instant when a
        recovered session resumes, so elapsed time continues from the
        original start rather than from the restart.
        """
        if self.running:
            raise RuntimeError("Session clock is already running")
        anchor = self.monotonic()
        self._start_instant = anchor - already_elapsed_seconds
        self._stopped_at = None
        self._tasks = [
            asyncio.create_task(
                self._run_cadence(self.ui_interval_seconds, on_ui_tick, anchor),
                name="session-clock-ui",
            ),
            asyncio.create_task(
                self._run_cadence(
                    self.checkpoint_interval_seconds, on_checkpoint_tick, anchor
                ),
                name="session-clock-checkpoint",
            ),
        ]

    def stop(self) -> None:
        """Cancel both cadences. Safe to call when already stopped."""
        if not self._tasks:
            return
        self._stopped_at = self.monotonic()
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    async def _run_cadence(
        self, interval: float, callback: TickCallback, anchor: float
    ) -> None:
        tick = 0
        while True:
            tick += 1
            delay = anchor + tick * interval - self.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            else:
                # Skip the ticks missed while the loop was busy.
                tick = math.floor((self.monotonic() - anchor) / interval)
            try:
                result = callback(self.elapsed_seconds)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Session clock callback failed")
