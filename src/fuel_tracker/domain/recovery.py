"""Domain models for interrupted-session recovery."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from fuel_tracker.domain.fuel import FuelPlan
from fuel_tracker.domain.sessions import SessionEvent, SessionLog

RECOVERY_WINDOW = timedelta(hours=24)
AUTO_SUGGEST_WINDOW = timedelta(hours=12)


class RecoveryState(StrEnum):
    """Classification of an interrupted session, computed on inspection."""

    NONE = "none"
    AUTO_SUGGEST = "auto_suggest"
    RECOVERABLE = "recoverable"
    EXPIRED = "expired"


@dataclass(frozen=True)
class RecoverableSession:
    """An active-status session found on inspection."""

    session_id: int
    started_at: datetime
    elapsed_seconds: int
    event_count: int
    can_recover: bool
    state: RecoveryState


@dataclass(frozen=True)
class RecoveryData:
    """Everything needed to reconstruct an active session."""

    session_log: SessionLog
    events: list[SessionEvent]
    fuel_plan: FuelPlan | None
    elapsed_seconds: int


@dataclass(frozen=True)
class RecoveryInspection:
    """Overall result of inspecting persisted sessions at startup."""

    state: RecoveryState
    sessions: list[RecoverableSession]

    @property
    def has_integrity_anomaly(self) -> bool:
        """More than one active-status session exists."""
        return len(self.sessions) > 1
