"""Tests for the SQLite adapters against a real database file."""

import asyncio
import sqlite3
from datetime import UTC, datetime

import pytest

from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.adapters.sqlite_event_repository import SqliteEventRepository
from fuel_tracker.adapters.sqlite_planned_session_repository import (
    SqlitePlannedSessionRepository,
)
from fuel_tracker.adapters.sqlite_product_catalog import SqliteProductCatalog
from fuel_tracker.adapters.sqlite_session_repository import SqliteSessionRepository
from fuel_tracker.domain.fuel import FuelProduct
from fuel_tracker.domain.sessions import (
    DiscomfortPayload,
    IntakePayload,
    NotePayload,
    SessionStatus,
)
from fuel_tracker.errors import StorageError
from fuel_tracker.services.checkpoints import SessionCheckpointStore
from fuel_tracker.services.fuel_planner import allocate

START = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def database(tmp_path) -> SqliteDatabase:
    return SqliteDatabase.create(tmp_path / "nested" / "fuel.db")


def test_session_checkpoint_writes_duration_and_pointer(database) -> None:
    repository = SqliteSessionRepository(database)
    session = repository.create_session(1, None, START)

    assert repository.get_pointer() is None
    assert repository.checkpoint(session.id, 12) is True

    stored = repository.get_session(session.id)
    assert stored is not None
    assert stored.status == SessionStatus.ACTIVE
    assert stored.started_at == START
    assert stored.duration_actual_minutes == 12
    assert repository.get_pointer() == session.id

    repository.clear_pointer()
    assert repository.get_pointer() is None


def test_clear_pointer_if_only_removes_matching_pointer(database) -> None:
    repository = SqliteSessionRepository(database)
    first = repository.create_session(1, None, START)
    second = repository.create_session(1, None, START)
    repository.checkpoint(second.id, 3)

    assert repository.clear_pointer_if(first.id) is False
    assert repository.get_pointer() == second.id
    assert repository.clear_pointer_if(second.id) is True
    assert repository.get_pointer() is None
    assert repository.clear_pointer_if(second.id) is False


def test_checkpoint_after_end_leaves_session_completed(database) -> None:
    repository = SqliteSessionRepository(database)
    session = repository.create_session(1, None, START)
    finished_at = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)

    assert repository.finish_session(
        session.id, SessionStatus.COMPLETED, finished_at, 60, "done"
    )
    assert repository.checkpoint(session.id, 75) is False

    stored = repository.get_session(session.id)
    assert stored is not None
    assert stored.status == SessionStatus.COMPLETED
    assert stored.ended_at == finished_at
    assert stored.duration_actual_minutes == 60
    assert stored.post_session_notes == "done"
    assert repository.get_pointer() is None


def test_finish_only_applies_to_active_sessions(database) -> None:
    repository = SqliteSessionRepository(database)
    session = repository.create_session(1, None, START)
    repository.checkpoint(session.id, 40)

    assert repository.finish_session(
        session.id, SessionStatus.ABANDONED, START, None, "gave up"
    )
    assert not repository.finish_session(
        session.id, SessionStatus.COMPLETED, START, 90, None
    )
    assert not repository.finish_session(999, SessionStatus.COMPLETED, START, 1, None)

    stored = repository.get_session(session.id)
    assert stored is not None
    assert stored.status == SessionStatus.ABANDONED
    assert stored.duration_actual_minutes == 40


def test_list_active_sessions_newest_first(database) -> None:
    repository = SqliteSessionRepository(database)
    older = repository.create_session(1, None, START)
    newer = repository.create_session(1, None, datetime(2024, 6, 2, tzinfo=UTC))
    done = repository.create_session(1, None, datetime(2024, 6, 3, tzinfo=UTC))
    repository.finish_session(done.id, SessionStatus.COMPLETED, START, 1, None)

    active = repository.list_active_sessions()

    assert [s.id for s in active] == [newer.id, older.id]


def test_update_notes(database) -> None:
    repository = SqliteSessionRepository(database)
    session = repository.create_session(1, None, START)

    assert repository.update_notes(session.id, "legs heavy")
    assert not repository.update_notes(999, "missing")
    stored = repository.get_session(session.id)
    assert stored is not None
    assert stored.post_session_notes == "legs heavy"


def test_events_round_trip_by_type_tag(database) -> None:
    sessions = SqliteSessionRepository(database)
    events = SqliteEventRepository(database)
    session = sessions.create_session(1, None, START)

    events.create_event(session.id, 900, START, NotePayload("hot day"))
    intake = events.create_event(
        session.id,
        300,
        START,
        IntakePayload(
            fuel_product_id=1,
            product_name="Gel",
            quantity=2,
            carbs_consumed=50,
            was_planned=True,
            timing_minute=5,
        ),
    )
    events.create_event(
        session.id, 600, START, DiscomfortPayload(severity=2, symptoms=("bloating",))
    )

    stored = events.list_events(session.id)
    assert [e.offset_seconds for e in stored] == [300, 600, 900]
    assert stored[0].payload == intake.payload
    assert stored[1].payload == DiscomfortPayload(severity=2, symptoms=("bloating",))
    assert stored[2].payload == NotePayload("hot day")
    assert [e.event_type for e in events.list_events(session.id, "intake")] == [
        "intake"
    ]
    assert events.count_events(session.id) == 3

    assert events.delete_event(intake.id)
    assert not events.delete_event(intake.id)
    assert events.count_events(session.id) == 2


def test_corrupt_event_row_raises_storage_error(database) -> None:
    sessions = SqliteSessionRepository(database)
    events = SqliteEventRepository(database)
    session = sessions.create_session(1, None, START)
    with database.connection() as conn:
        conn.execute(
            """
            INSERT INTO session_events
                (session_log_id, event_type, timestamp_offset_seconds,
                 actual_timestamp, data_json)
            VALUES (?, 'weather', 0, ?, '{}')
            """,
            (session.id, START.isoformat()),
        )

    with pytest.raises(StorageError):
        events.list_events(session.id)


def test_planned_session_stores_plan_json(database) -> None:
    repository = SqlitePlannedSessionRepository(database)
    plan = allocate(150, 180, [FuelProduct(id=3, name="Chews", carbs_per_serving=15)])

    saved = repository.create_planned_session(1, "2024-06-01", plan, "long ride")
    loaded = repository.get_planned_session(saved.id)

    assert loaded is not None
    assert loaded.fuel_plan == plan
    assert loaded.planned_date == "2024-06-01"
    assert loaded.notes == "long ride"
    assert repository.get_planned_session(999) is None


def test_product_catalog_excludes_deleted_products(database) -> None:
    catalog = SqliteProductCatalog(database)
    gel = catalog.add_product(1, "Gel", 25, "gel")
    bar = catalog.add_product(1, "Bar", 40)
    catalog.add_product(2, "Other user's drink", 30)

    assert catalog.delete_product(bar.id)
    assert not catalog.delete_product(bar.id)

    assert catalog.list_products(1) == [gel]


def test_storage_errors_are_wrapped(database) -> None:
    with pytest.raises(StorageError):
        with database.connection() as conn:
            conn.execute("SELECT * FROM missing_table")


def test_failed_unit_of_work_rolls_back(database) -> None:
    repository = SqliteSessionRepository(database)
    with pytest.raises(RuntimeError):
        with database.connection() as conn:
            conn.execute(
                "INSERT INTO session_logs (user_id, started_at) VALUES (1, ?)",
                (START.isoformat(),),
            )
            raise RuntimeError("abort")

    assert repository.list_active_sessions() == []


def test_checkpoint_store_on_sqlite_end_wins(database) -> None:
    repository = SqliteSessionRepository(database)
    session = repository.create_session(1, None, START)
    store = SessionCheckpointStore(repository)

    async def scenario() -> None:
        await store.checkpoint(session.id, 600)
        await store.run_write(
            session.id,
            repository.finish_session,
            session.id,
            SessionStatus.COMPLETED,
            START,
            11,
            None,
        )
        await store.checkpoint(session.id, 720)

    asyncio.run(scenario())

    stored = repository.get_session(session.id)
    assert stored is not None
    assert stored.status == SessionStatus.COMPLETED
    assert stored.duration_actual_minutes == 11


def test_schema_uses_foreign_keys(database) -> None:
    with database.connection() as conn:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                """
                INSERT INTO session_events
                    (session_log_id, event_type, timestamp_offset_seconds,
                     actual_timestamp, data_json)
                VALUES (999, 'note', 0, '2024-06-01T08:00:00+00:00', '{}')
                """
            )
