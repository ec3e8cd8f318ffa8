"""Domain models for tracked activity sessions."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class SessionStatus(StrEnum):
    """Persisted status of a session log."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})


@dataclass(frozen=True)
class SessionLog:
    """Represents one tracked activity from start to end or abandonment."""

    id: int
    user_id: int
    planned_session_id: int | None
    started_at: datetime
    status: SessionStatus
    ended_at: datetime | None = None
    duration_actual_minutes: int | None = None
    post_session_notes: str | None = None


@dataclass(frozen=True)
class IntakePayload:
    """A product consumed during the session."""

    fuel_product_id: int
    product_name: str
    quantity: int
    carbs_consumed: float
    was_planned: bool
    timing_minute: int | None = None


@dataclass(frozen=True)
class DiscomfortPayload:
    """A GI discomfort report on a 1-5 scale."""

    severity: int
    symptoms: tuple[str, ...] = ()
    notes: str | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.severity <= 5:  # noqa: PLR2004
            raise ValueError("Discomfort severity must be between 1 and 5")


@dataclass(frozen=True)
class NotePayload:
    """A free-text note."""

    text: str


EventPayload = IntakePayload | DiscomfortPayload | NotePayload

EVENT_TYPES: dict[type, str] = {
    IntakePayload: "intake",
    DiscomfortPayload: "discomfort",
    NotePayload: "note",
}


def event_type_of(payload: EventPayload) -> str:
    """Return the storage tag for an event payload."""
    return EVENT_TYPES[type(payload)]


@dataclass(frozen=True)
class SessionEvent:
    """Append-only event logged during an active session."""

    id: int
    session_log_id: int
    offset_seconds: int
    actual_timestamp: datetime
    payload: EventPayload

    @property
    def event_type(self) -> str:
        return event_type_of(self.payload)


@dataclass(frozen=True)
class SessionSummary:
    """Counts and totals shown when a session ends."""

    intake_count: int
    discomfort_count: int
    total_carbs: float
