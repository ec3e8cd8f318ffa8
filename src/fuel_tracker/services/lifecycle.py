"""Active session lifecycle: Idle -> Active -> Completed | Abandoned."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Protocol

from fuel_tracker.domain.fuel import FuelPlan, FuelProduct, NextIntake
from fuel_tracker.domain.recovery import RECOVERY_WINDOW, RecoveryData
from fuel_tracker.domain.sessions import (
    TERMINAL_STATUSES,
    DiscomfortPayload,
    EventPayload,
    IntakePayload,
    NotePayload,
    SessionEvent,
    SessionLog,
    SessionStatus,
    SessionSummary,
)
from fuel_tracker.errors import InvalidSessionStateError, SessionNotFoundError
from fuel_tracker.services import fuel_planner
from fuel_tracker.services.checkpoints import SessionCheckpointStore
from fuel_tracker.services.clock import SessionClock, TickCallback
from fuel_tracker.services.planning import PlannedSessionRepository
from fuel_tracker.services.reminders import ReminderScheduler, build_reminders

logger = logging.getLogger(__name__)

DEFAULT_ABANDON_NOTE = "Session abandoned by user"


class SessionLogRepository(Protocol):
    """Persistence interface for session log rows."""

    def create_session(
        self, user_id: int, planned_session_id: int | None, started_at: datetime
    ) -> SessionLog:
        """Create an active session row and return it."""

    def get_session(self, session_id: int) -> SessionLog | None:
        """Return a session by id, if present."""

    def list_active_sessions(self) -> list[SessionLog]:
        """Return every active-status session, newest first."""

    def finish_session(
        self,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        duration_minutes: int | None,
        notes: str | None,
    ) -> bool:
        """Move an active session to a terminal status.

        A ``None`` duration keeps the last checkpointed value. Returns False
        when the session is missing or no longer active.
        """

    def update_notes(self, session_id: int, notes: str | None) -> bool:
        """Replace closing notes; returns False when the session is missing."""


class SessionEventRepository(Protocol):
    """Persistence interface for append-only session events."""

    def create_event(
        self,
        session_id: int,
        offset_seconds: int,
        actual_timestamp: datetime,
        payload: EventPayload,
    ) -> SessionEvent:
        """Append an event and return it."""

    def list_events(
        self, session_id: int, event_type: str | None = None
    ) -> list[SessionEvent]:
        """Return events ordered by offset, optionally filtered by type."""

    def count_events(self, session_id: int) -> int:
        """Return the number of events logged for a session."""

    def delete_event(self, event_id: int) -> bool:
        """Delete an event; returns False when it does not exist."""


class LifecycleState(StrEnum):
    """In-process state of the lifecycle."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionLifecycle:
    """State machine tying the clock, checkpoints and event log together."""

    session_repository: SessionLogRepository
    event_repository: SessionEventRepository
    plan_repository: PlannedSessionRepository
    checkpoint_store: SessionCheckpointStore
    reminder_scheduler: ReminderScheduler
    clock_factory: Callable[[], SessionClock] = SessionClock
    default_user_id: int = 1
    on_ui_tick: TickCallback | None = None
    recovery_window: timedelta = RECOVERY_WINDOW
    now: Callable[[], datetime] = _utcnow
    state: LifecycleState = field(default=LifecycleState.IDLE, init=False)
    session: SessionLog | None = field(default=None, init=False)
    plan: FuelPlan | None = field(default=None, init=False)
    clock: SessionClock | None = field(default=None, init=False)
    failed_checkpoints: int = field(default=0, init=False)

    @property
    def elapsed_seconds(self) -> int:
        return self.clock.elapsed_seconds if self.clock else 0

    async def start(
        self, user_id: int | None = None, planned_session_id: int | None = None
    ) -> SessionLog:
        """Create an active session row and start the clock."""
        if self.state is LifecycleState.ACTIVE:
            raise InvalidSessionStateError("A session is already active")
        await self._ensure_no_recoverable_session()
        plan = None
        if planned_session_id is not None:
            planned = await asyncio.to_thread(
                self.plan_repository.get_planned_session, planned_session_id
            )
            if planned is None:
                logger.warning(
                    "Planned session %s not found; starting without a plan",
                    planned_session_id,
                )
            else:
                plan = planned.fuel_plan
        started_at = self.now()
        session = await asyncio.to_thread(
            self.session_repository.create_session,
            user_id if user_id is not None else self.default_user_id,
            planned_session_id,
            started_at,
        )
        self._activate(session, plan, already_elapsed_seconds=0)
        await self._checkpoint_now(session.id, 0)
        self._schedule_reminders(session, plan)
        logger.info(
            "Started session %s (planned session %s)", session.id, planned_session_id
        )
        return session

    async def resume(self, recovery: RecoveryData) -> SessionLog:
        """Reconstruct an interrupted session as active without re-starting it."""
        if self.state is LifecycleState.ACTIVE:
            raise InvalidSessionStateError("A session is already active")
        session = recovery.session_log
        if session.status in TERMINAL_STATUSES:
            raise InvalidSessionStateError(
                f"Session {session.id} is {session.status} and cannot be resumed"
            )
        self._activate(
            session,
            recovery.fuel_plan,
            already_elapsed_seconds=recovery.elapsed_seconds,
        )
        await self._checkpoint_now(session.id, recovery.elapsed_seconds)
        self._schedule_reminders(session, recovery.fuel_plan)
        logger.info(
            "Resumed session %s at %ss with %s events",
            session.id,
            recovery.elapsed_seconds,
            len(recovery.events),
        )
        return session

    async def log_event(self, payload: EventPayload) -> SessionEvent:
        """Append an event at the current elapsed offset."""
        session = self._require_active()
        event = await asyncio.to_thread(
            self.event_repository.create_event,
            session.id,
            self.elapsed_seconds,
            self.now(),
            payload,
        )
        logger.info(
            "Logged %s event for session %s at %ss",
            event.event_type,
            session.id,
            event.offset_seconds,
        )
        return event

    async def log_intake(
        self,
        product: FuelProduct,
        quantity: int = 1,
        was_planned: bool = False,
        timing_minute: int | None = None,
    ) -> SessionEvent:
        """Log consumption of a product."""
        return await self.log_event(
            IntakePayload(
                fuel_product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                carbs_consumed=product.carbs_per_serving * quantity,
                was_planned=was_planned,
                timing_minute=timing_minute,
            )
        )

    async def log_planned_intake(self, intake: NextIntake) -> SessionEvent:
        """Log a planned intake as taken."""
        return await self.log_event(
            IntakePayload(
                fuel_product_id=intake.fuel_product_id,
                product_name=intake.product_name,
                quantity=1,
                carbs_consumed=intake.carbs_per_serving,
                was_planned=True,
                timing_minute=intake.timing_minute,
            )
        )

    async def log_discomfort(
        self, severity: int, symptoms: tuple[str, ...] = (), notes: str | None = None
    ) -> SessionEvent:
        """Log a discomfort report."""
        return await self.log_event(
            DiscomfortPayload(severity=severity, symptoms=symptoms, notes=notes)
        )

    async def log_note(self, text: str) -> SessionEvent:
        """Log a free-text note."""
        return await self.log_event(NotePayload(text=text))

    async def end(self, notes: str | None = None) -> SessionLog:
        """Complete the active session."""
        return await self._finish(SessionStatus.COMPLETED, notes)

    async def abandon(self, reason: str | None = None) -> SessionLog:
        """Abandon the active session."""
        return await self._finish(
            SessionStatus.ABANDONED, reason or DEFAULT_ABANDON_NOTE
        )

    async def update_notes(self, session_id: int, notes: str | None) -> None:
        """Replace a session's closing notes at any time after creation."""
        try:
            updated = await self.checkpoint_store.run_write(
                session_id, self.session_repository.update_notes, session_id, notes
            )
        finally:
            if not self._is_running(session_id):
                self.checkpoint_store.forget(session_id)
        if not updated:
            raise SessionNotFoundError(session_id)

    async def delete_event(self, event_id: int) -> bool:
        """Delete a logged event."""
        return await asyncio.to_thread(self.event_repository.delete_event, event_id)

    async def summary(self, session_id: int) -> SessionSummary:
        """Count intakes and discomfort reports and total consumed carbs."""
        events = await asyncio.to_thread(self.event_repository.list_events, session_id)
        intakes = [e.payload for e in events if isinstance(e.payload, IntakePayload)]
        return SessionSummary(
            intake_count=len(intakes),
            discomfort_count=sum(
                isinstance(e.payload, DiscomfortPayload) for e in events
            ),
            total_carbs=sum(p.carbs_consumed for p in intakes),
        )

    async def next_intake(self) -> NextIntake | None:
        """Return the next planned intake that has not been logged."""
        session = self._require_active()
        if self.plan is None:
            return None
        events = await asyncio.to_thread(
            self.event_repository.list_events, session.id, "intake"
        )
        logged = [
            e.payload.timing_minute
            for e in events
            if isinstance(e.payload, IntakePayload)
            and e.payload.timing_minute is not None
        ]
        return fuel_planner.next_intake(self.plan, logged, self.elapsed_seconds // 60)

    def detach(self) -> None:
        """Stop the clock without touching storage, e.g. on process shutdown.

        The session stays active in storage and is picked up by recovery.
        """
        if self.clock:
            self.clock.stop()

    def _activate(
        self, session: SessionLog, plan: FuelPlan | None, already_elapsed_seconds: int
    ) -> None:
        self.session = session
        self.plan = plan
        self.failed_checkpoints = 0
        self._start_clock(already_elapsed_seconds)
        self.state = LifecycleState.ACTIVE

    def _start_clock(self, already_elapsed_seconds: int) -> None:
        self.clock = self.clock_factory()
        self.clock.start(
            self._on_ui_tick,
            self._on_checkpoint_tick,
            already_elapsed_seconds=already_elapsed_seconds,
        )

    async def _finish(self, status: SessionStatus, notes: str | None) -> SessionLog:
        session = self._require_active()
        elapsed = self.elapsed_seconds
        if self.clock:
            self.clock.stop()
        try:
            finished = await self.checkpoint_store.run_write(
                session.id,
                self.session_repository.finish_session,
                session.id,
                status,
                self.now(),
                elapsed // 60,
                notes,
            )
        except Exception:
            # The session stays active so the caller can retry.
            self._start_clock(elapsed)
            raise
        await self._release(session.id)
        if not finished:
            self._reset()
            raise InvalidSessionStateError(
                f"Session {session.id} was already finished elsewhere"
            )
        self.state = (
            LifecycleState.COMPLETED
            if status is SessionStatus.COMPLETED
            else LifecycleState.ABANDONED
        )
        logger.info("Session %s %s after %ss", session.id, status, elapsed)
        updated = await asyncio.to_thread(
            self.session_repository.get_session, session.id
        )
        self.session = updated
        return updated or session

    async def _release(self, session_id: int) -> None:
        try:
            await self.checkpoint_store.clear_pointer_for(session_id)
        except Exception:
            logger.exception(
                "Failed to clear recovery pointer for session %s", session_id
            )
        try:
            cancelled = self.reminder_scheduler.cancel(session_id)
            logger.info("Cancelled %s reminders for session %s", cancelled, session_id)
        except Exception:
            logger.exception("Failed to cancel reminders for session %s", session_id)
        self.checkpoint_store.forget(session_id)

    def _reset(self) -> None:
        self.state = LifecycleState.IDLE
        self.session = None
        self.plan = None

    def _schedule_reminders(self, session: SessionLog, plan: FuelPlan | None) -> None:
        reminders = build_reminders(plan)
        if not reminders:
            return
        try:
            scheduled = self.reminder_scheduler.schedule(
                session.id, session.started_at, reminders
            )
            logger.info("Scheduled %s reminders for session %s", scheduled, session.id)
        except Exception:
            logger.exception("Failed to schedule reminders for session %s", session.id)

    def _is_running(self, session_id: int) -> bool:
        return (
            self.state is LifecycleState.ACTIVE
            and self.session is not None
            and self.session.id == session_id
        )

    async def _ensure_no_recoverable_session(self) -> None:
        active = await asyncio.to_thread(self.session_repository.list_active_sessions)
        current = self.now()
        for session in active:
            if current - session.started_at < self.recovery_window:
                raise InvalidSessionStateError(
                    f"Session {session.id} is still active; recover or abandon it"
                )

    async def _checkpoint_now(self, session_id: int, elapsed_seconds: int) -> None:
        try:
            await self.checkpoint_store.checkpoint(session_id, elapsed_seconds)
        except Exception:
            self.failed_checkpoints += 1
            logger.exception(
                "Checkpoint failed for session %s; retrying on next tick", session_id
            )

    def _require_active(self) -> SessionLog:
        if self.state is not LifecycleState.ACTIVE or self.session is None:
            raise InvalidSessionStateError("No active session")
        return self.session

    async def _on_ui_tick(self, elapsed_seconds: int) -> None:
        if self.on_ui_tick is None:
            return
        result = self.on_ui_tick(elapsed_seconds)
        if asyncio.iscoroutine(result):
            await result

    async def _on_checkpoint_tick(self, elapsed_seconds: int) -> None:
        session = self.session
        if session is None:
            return
        await self._checkpoint_now(session.id, elapsed_seconds)
