"""Crash recovery for interrupted sessions."""

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fuel_tracker.domain.recovery import (
    AUTO_SUGGEST_WINDOW,
    RECOVERY_WINDOW,
    RecoverableSession,
    RecoveryData,
    RecoveryInspection,
    RecoveryState,
)
from fuel_tracker.domain.sessions import TERMINAL_STATUSES, SessionLog, SessionStatus
from fuel_tracker.errors import InvalidSessionStateError, SessionNotFoundError
from fuel_tracker.services.checkpoints import SessionCheckpointStore
from fuel_tracker.services.lifecycle import (
    DEFAULT_ABANDON_NOTE,
    SessionEventRepository,
    SessionLogRepository,
)
from fuel_tracker.services.planning import PlannedSessionRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionRecoveryManager:
    """Finds, reconstructs and discards sessions left active by a dead process.

    Sessions are classified by age on inspection and never mutated as a side
    effect of classification: an expired session stays active in storage
    until the caller abandons it.
    """

    session_repository: SessionLogRepository
    event_repository: SessionEventRepository
    plan_repository: PlannedSessionRepository
    checkpoint_store: SessionCheckpointStore
    recovery_window: timedelta = RECOVERY_WINDOW
    auto_suggest_window: timedelta = AUTO_SUGGEST_WINDOW
    now: Callable[[], datetime] = _utcnow

    def classify(self, age: timedelta) -> RecoveryState:
        """Classify an active session by how long ago it started."""
        if age >= self.recovery_window:
            return RecoveryState.EXPIRED
        if age < self.auto_suggest_window:
            return RecoveryState.AUTO_SUGGEST
        return RecoveryState.RECOVERABLE

    async def inspect(self) -> RecoveryInspection:
        """Classify persisted state, based on the most recent active session."""
        sessions = await self.list_recoverable()
        if not sessions:
            return RecoveryInspection(state=RecoveryState.NONE, sessions=[])
        if len(sessions) > 1:
            logger.warning(
                "Found %s active sessions: %s",
                len(sessions),
                [s.session_id for s in sessions],
            )
        return RecoveryInspection(state=sessions[0].state, sessions=sessions)

    async def list_recoverable(self) -> list[RecoverableSession]:
        """Describe every active-status session, newest first.

        More than one active session means an integrity problem; all of them
        are returned so the caller can decide.
        """
        active = await asyncio.to_thread(self.session_repository.list_active_sessions)
        return [await self._describe(session) for session in active]

    async def smart_recover(self) -> RecoverableSession | None:
        """Return the session to proactively offer for recovery, if any.

        The recovery pointer is the fast path; when it is missing or stale,
        the most recent active session inside the auto-suggest window wins.
        """
        pointer = await self.checkpoint_store.get_pointer()
        if pointer is not None:
            session = await asyncio.to_thread(
                self.session_repository.get_session, pointer
            )
            if session is not None and session.status == SessionStatus.ACTIVE:
                candidate = await self._describe(session)
                if candidate.state is RecoveryState.AUTO_SUGGEST:
                    return candidate
            else:
                logger.info("Recovery pointer to session %s is stale", pointer)

        for candidate in await self.list_recoverable():
            if candidate.state is RecoveryState.AUTO_SUGGEST:
                return candidate
        return None

    async def load_full(self, session_id: int) -> RecoveryData | None:
        """Load a session with its events and plan.

        Elapsed time is reconstructed from the wall clock, not from the last
        checkpoint, since time kept passing while the process was down.
        """
        session = await asyncio.to_thread(
            self.session_repository.get_session, session_id
        )
        if session is None:
            return None
        events = await asyncio.to_thread(self.event_repository.list_events, session_id)
        fuel_plan = None
        if session.planned_session_id is not None:
            planned = await asyncio.to_thread(
                self.plan_repository.get_planned_session, session.planned_session_id
            )
            fuel_plan = planned.fuel_plan if planned else None
        return RecoveryData(
            session_log=session,
            events=events,
            fuel_plan=fuel_plan,
            elapsed_seconds=self._elapsed_seconds(session),
        )

    async def recover(self, session_id: int) -> RecoveryData:
        """Load an interrupted session for resumption."""
        data = await self.load_full(session_id)
        if data is None:
            raise SessionNotFoundError(session_id)
        if data.session_log.status in TERMINAL_STATUSES:
            raise InvalidSessionStateError(
                f"Session {session_id} is {data.session_log.status}"
            )
        logger.info(
            "Recovered session %s with %s events", session_id, len(data.events)
        )
        return data

    async def abandon(self, session_id: int, reason: str | None = None) -> None:
        """Mark an interrupted session abandoned and clear the pointer."""
        finished = await self.checkpoint_store.run_write(
            session_id,
            self.session_repository.finish_session,
            session_id,
            SessionStatus.ABANDONED,
            self.now(),
            None,
            reason or DEFAULT_ABANDON_NOTE,
        )
        if finished:
            logger.info("Abandoned session %s", session_id)
        else:
            session = await asyncio.to_thread(
                self.session_repository.get_session, session_id
            )
            if session is None:
                raise SessionNotFoundError(session_id)
            logger.info("Session %s already %s", session_id, session.status)
        await self.checkpoint_store.clear_pointer_for(session_id)
        self.checkpoint_store.forget(session_id)

    async def _describe(self, session: SessionLog) -> RecoverableSession:
        event_count = await asyncio.to_thread(
            self.event_repository.count_events, session.id
        )
        state = self.classify(self.now() - session.started_at)
        return RecoverableSession(
            session_id=session.id,
            started_at=session.started_at,
            elapsed_seconds=self._elapsed_seconds(session),
            event_count=event_count,
            can_recover=state is not RecoveryState.EXPIRED,
            state=state,
        )

    def _elapsed_seconds(self, session: SessionLog) -> int:
        return max(0, math.floor((self.now() - session.started_at).total_seconds()))


def format_recovery_time(elapsed_seconds: int) -> str:
    """Format elapsed time as ``"1h 30min"`` or ``"45min"``."""
    hours = elapsed_seconds // 3600
    minutes = (elapsed_seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}min"
    return f"{minutes}min"


def recovery_prompt(session: RecoverableSession) -> str:
    """Prompt text offering to resume an interrupted session."""
    elapsed = format_recovery_time(session.elapsed_seconds)
    return (
        f"You have an unfinished session from {elapsed} ago with "
        f"{session.event_count} logged events. Do you want to continue?"
    )
