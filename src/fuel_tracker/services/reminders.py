"""Intake reminder contracts."""

from datetime import datetime
from typing import Protocol

from fuel_tracker.domain.fuel import FuelPlan, IntakeReminder


class ReminderScheduler(Protocol):
    """Owns delivery timing for intake reminders."""

    def schedule(
        self, session_id: int, started_at: datetime, reminders: list[IntakeReminder]
    ) -> int:
        """Schedule reminders relative to the session start.

        Returns how many reminders were scheduled.
        """

    def cancel(self, session_id: int) -> int:
        """Cancel pending reminders for a session and return how many."""


class ReminderNotifier(Protocol):
    """Delivers a single reminder message."""

    async def notify(self, text: str) -> None:
        """Deliver a reminder."""


def build_reminders(plan: FuelPlan | None) -> list[IntakeReminder]:
    """Flatten every item's timing offsets into reminder content."""
    if plan is None:
        return []
    return [
        IntakeReminder(
            offset_minutes=timing,
            product_name=item.product_name,
            carbs_per_serving=item.carbs_per_serving,
        )
        for item in plan.items
        for timing in item.timing_minutes
    ]


def format_reminder(reminder: IntakeReminder) -> str:
    """Human-readable reminder text."""
    return (
        f"Time for intake at {reminder.offset_minutes} min: "
        f"{reminder.product_name} ({reminder.carbs_per_serving:g}g carbs)"
    )
