"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from functools import partial

import pytest

from fuel_tracker.config import Settings
from fuel_tracker.containers import AppContainer
from fuel_tracker.domain.fuel import (
    FuelPlan,
    FuelProduct,
    IntakeReminder,
    PlannedSession,
)
from fuel_tracker.domain.sessions import (
    EventPayload,
    SessionEvent,
    SessionLog,
    SessionStatus,
    event_type_of,
)
from fuel_tracker.errors import StorageError
from fuel_tracker.services.checkpoints import (
    CheckpointRepository,
    SessionCheckpointStore,
)
from fuel_tracker.services.clock import SessionClock
from fuel_tracker.services.lifecycle import (
    SessionEventRepository,
    SessionLifecycle,
    SessionLogRepository,
)
from fuel_tracker.services.planning import (
    PlannedSessionRepository,
    PlanningService,
    ProductCatalog,
)
from fuel_tracker.services.recovery import SessionRecoveryManager
from fuel_tracker.services.reminders import ReminderNotifier, ReminderScheduler

START = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)


@dataclass
class FakeWallClock:
    """Settable wall clock."""

    current: datetime = START

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@dataclass
class FakeMonotonic:
    """Settable monotonic source for the session clock."""

    value: float = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@dataclass
class InMemorySessionRepository(SessionLogRepository, CheckpointRepository):
    """In-memory session log and pointer storage for tests."""

    sessions: dict[int, SessionLog] = field(default_factory=dict)
    pointer: int | None = None
    fail_checkpoints: bool = False
    fail_finish: bool = False
    checkpoints: list[tuple[int, int]] = field(default_factory=list)
    _next_id: int = 1

    def add(self, session: SessionLog) -> SessionLog:
        self.sessions[session.id] = session
        self._next_id = max(self._next_id, session.id + 1)
        return session

    def create_session(
        self, user_id: int, planned_session_id: int | None, started_at: datetime
    ) -> SessionLog:
        session = SessionLog(
            id=self._next_id,
            user_id=user_id,
            planned_session_id=planned_session_id,
            started_at=started_at,
            status=SessionStatus.ACTIVE,
        )
        return self.add(session)

    def get_session(self, session_id: int) -> SessionLog | None:
        return self.sessions.get(session_id)

    def list_active_sessions(self) -> list[SessionLog]:
        active = [
            s for s in self.sessions.values() if s.status == SessionStatus.ACTIVE
        ]
        return sorted(active, key=lambda s: s.started_at, reverse=True)

    def finish_session(
        self,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        duration_minutes: int | None,
        notes: str | None,
    ) -> bool:
        if self.fail_finish:
            raise StorageError("disk full")
        session = self.sessions.get(session_id)
        if session is None or session.status != SessionStatus.ACTIVE:
            return False
        self.sessions[session_id] = replace(
            session,
            status=status,
            ended_at=ended_at,
            duration_actual_minutes=(
                duration_minutes
                if duration_minutes is not None
                else session.duration_actual_minutes
            ),
            post_session_notes=(
                notes if notes is not None else session.post_session_notes
            ),
        )
        return True

    def update_notes(self, session_id: int, notes: str | None) -> bool:
        session = self.sessions.get(session_id)
        if session is None:
            return False
        self.sessions[session_id] = replace(session, post_session_notes=notes)
        return True

    def checkpoint(self, session_id: int, duration_minutes: int) -> bool:
        if self.fail_checkpoints:
            raise StorageError("database is locked")
        session = self.sessions.get(session_id)
        if session is None or session.status != SessionStatus.ACTIVE:
            return False
        self.sessions[session_id] = replace(
            session, duration_actual_minutes=duration_minutes
        )
        self.pointer = session_id
        self.checkpoints.append((session_id, duration_minutes))
        return True

    def get_pointer(self) -> int | None:
        return self.pointer

    def clear_pointer(self) -> None:
        self.pointer = None

    def clear_pointer_if(self, session_id: int) -> bool:
        if self.pointer != session_id:
            return False
        self.pointer = None
        return True


@dataclass
class InMemoryEventRepository(SessionEventRepository):
    """In-memory session event log for tests."""

    events: dict[int, SessionEvent] = field(default_factory=dict)
    _next_id: int = 1

    def create_event(
        self,
        session_id: int,
        offset_seconds: int,
        actual_timestamp: datetime,
        payload: EventPayload,
    ) -> SessionEvent:
        event = SessionEvent(
            id=self._next_id,
            session_log_id=session_id,
            offset_seconds=offset_seconds,
            actual_timestamp=actual_timestamp,
            payload=payload,
        )
        self.events[event.id] = event
        self._next_id += 1
        return event

    def list_events(
        self, session_id: int, event_type: str | None = None
    ) -> list[SessionEvent]:
        events = [
            e
            for e in self.events.values()
            if e.session_log_id == session_id
            and (event_type is None or event_type_of(e.payload) == event_type)
        ]
        return sorted(events, key=lambda e: (e.offset_seconds, e.id))

    def count_events(self, session_id: int) -> int:
        return len(self.list_events(session_id))

    def delete_event(self, event_id: int) -> bool:
        return self.events.pop(event_id, None) is not None


@dataclass
class InMemoryPlannedSessionRepository(PlannedSessionRepository):
    """In-memory planned session storage for tests."""

    planned: dict[int, PlannedSession] = field(default_factory=dict)

    def create_planned_session(
        self, user_id: int, planned_date: str, plan: FuelPlan, notes: str | None
    ) -> PlannedSession:
        record = PlannedSession(
            id=len(self.planned) + 1,
            user_id=user_id,
            planned_date=planned_date,
            fuel_plan=plan,
            notes=notes,
        )
        self.planned[record.id] = record
        return record

    def get_planned_session(self, planned_session_id: int) -> PlannedSession | None:
        return self.planned.get(planned_session_id)


@dataclass
class InMemoryProductCatalog(ProductCatalog):
    """In-memory product catalog for tests."""

    products: list[FuelProduct] = field(default_factory=list)

    def list_products(self, user_id: int) -> list[FuelProduct]:
        return list(self.products)


@dataclass
class FakeReminderScheduler(ReminderScheduler):
    """Records scheduled and cancelled reminders."""

    scheduled: dict[int, list[IntakeReminder]] = field(default_factory=dict)
    cancelled: list[int] = field(default_factory=list)

    def schedule(
        self, session_id: int, started_at: datetime, reminders: list[IntakeReminder]
    ) -> int:
        self.scheduled[session_id] = list(reminders)
        return len(reminders)

    def cancel(self, session_id: int) -> int:
        self.cancelled.append(session_id)
        return len(self.scheduled.pop(session_id, []))


@dataclass
class FakeNotifier(ReminderNotifier):
    """Records delivered reminder texts."""

    messages: list[str] = field(default_factory=list)

    async def notify(self, text: str) -> None:
        self.messages.append(text)


@dataclass
class Engine:
    """Services wired on shared in-memory storage."""

    sessions: InMemorySessionRepository
    events: InMemoryEventRepository
    plans: InMemoryPlannedSessionRepository
    catalog: InMemoryProductCatalog
    scheduler: FakeReminderScheduler
    checkpoint_store: SessionCheckpointStore
    lifecycle: SessionLifecycle
    recovery: SessionRecoveryManager
    planning: PlanningService
    wall: FakeWallClock
    monotonic: FakeMonotonic


def build_engine() -> Engine:
    sessions = InMemorySessionRepository()
    events = InMemoryEventRepository()
    plans = InMemoryPlannedSessionRepository()
    catalog = InMemoryProductCatalog(
        [
            FuelProduct(id=1, name="Gel", carbs_per_serving=25),
            FuelProduct(id=2, name="Bar", carbs_per_serving=40),
        ]
    )
    scheduler = FakeReminderScheduler()
    checkpoint_store = SessionCheckpointStore(sessions)
    wall = FakeWallClock()
    monotonic = FakeMonotonic()
    lifecycle = SessionLifecycle(
        session_repository=sessions,
        event_repository=events,
        plan_repository=plans,
        checkpoint_store=checkpoint_store,
        reminder_scheduler=scheduler,
        clock_factory=partial(
            SessionClock,
            ui_interval_seconds=3600,
            checkpoint_interval_seconds=3600,
            monotonic=monotonic,
        ),
        now=wall,
    )
    recovery = SessionRecoveryManager(
        session_repository=sessions,
        event_repository=events,
        plan_repository=plans,
        checkpoint_store=checkpoint_store,
        now=wall,
    )
    return Engine(
        sessions=sessions,
        events=events,
        plans=plans,
        catalog=catalog,
        scheduler=scheduler,
        checkpoint_store=checkpoint_store,
        lifecycle=lifecycle,
        recovery=recovery,
        planning=PlanningService(catalog, plans),
        wall=wall,
        monotonic=monotonic,
    )


@pytest.fixture
def engine() -> Engine:
    return build_engine()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_path=str(tmp_path / "fuel.db"),
        telegram_bot_token=None,
        telegram_chat_id=None,
        supabase_url=None,
        supabase_service_key=None,
    )


@pytest.fixture
def container(settings: Settings, engine: Engine) -> AppContainer:
    closed: list[bool] = []

    async def close_resources() -> None:
        closed.append(True)

    return AppContainer(
        settings=settings,
        product_catalog=engine.catalog,
        planning_service=engine.planning,
        lifecycle=engine.lifecycle,
        recovery_manager=engine.recovery,
        reminder_scheduler=engine.scheduler,
        telegram_client=None,
        close_resources=close_resources,
    )
