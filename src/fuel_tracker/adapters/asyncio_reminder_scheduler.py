"""In-process reminder scheduler built on asyncio tasks."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from fuel_tracker.domain.fuel import IntakeReminder
from fuel_tracker.services.reminders import (
    ReminderNotifier,
    ReminderScheduler,
    format_reminder,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class AsyncioReminderScheduler(ReminderScheduler):
    """Sleeps until each reminder is due, then hands it to the notifier.

    Must be called from inside a running event loop. Reminders whose offset
    already passed are skipped, which is what makes rescheduling after a
    recovery safe.
    """

    notifier: ReminderNotifier
    now: Callable[[], datetime] = _utcnow
    _tasks: dict[int, set[asyncio.Task[None]]] = field(
        default_factory=dict, init=False
    )

    def schedule(
        self, session_id: int, started_at: datetime, reminders: list[IntakeReminder]
    ) -> int:
        current = self.now()
        tasks = self._tasks.setdefault(session_id, set())
        scheduled = 0
        for reminder in reminders:
            due = started_at + timedelta(minutes=reminder.offset_minutes)
            delay = (due - current).total_seconds()
            if delay < 0:
                continue
            task = asyncio.create_task(self._deliver(session_id, delay, reminder))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
            scheduled += 1
        return scheduled

    def cancel(self, session_id: int) -> int:
        tasks = self._tasks.pop(session_id, set())
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    def cancel_all(self) -> int:
        """Cancel every pending reminder, e.g. on shutdown."""
        return sum(self.cancel(session_id) for session_id in list(self._tasks))

    def pending(self, session_id: int) -> int:
        """Number of reminders still waiting for a session."""
        return sum(not task.done() for task in self._tasks.get(session_id, ()))

    async def _deliver(
        self, session_id: int, delay: float, reminder: IntakeReminder
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await self.notifier.notify(format_reminder(reminder))
        except Exception:
            logger.exception(
                "Failed to deliver reminder for session %s at %s min",
                session_id,
                reminder.offset_minutes,
            )
