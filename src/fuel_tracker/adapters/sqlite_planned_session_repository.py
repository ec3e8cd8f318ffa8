"""SQLite-backed storage for planned sessions."""

import json
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

from fuel_tracker.adapters.serialization import (
    parse_timestamp,
    plan_from_dict,
    plan_to_dict,
)
from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.domain.fuel import FuelPlan, PlannedSession
from fuel_tracker.errors import StorageError
from fuel_tracker.services.planning import PlannedSessionRepository


@dataclass
class SqlitePlannedSessionRepository(PlannedSessionRepository):
    """SQLite implementation for planned sessions."""

    database: SqliteDatabase

    def create_planned_session(
        self, user_id: int, planned_date: str, plan: FuelPlan, notes: str | None
    ) -> PlannedSession:
        """Persist a plan as a JSON blob and return the saved record."""
        created_at = datetime.now(tz=UTC)
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO planned_sessions
                    (user_id, planned_date, fuel_plan_json, notes, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    planned_date,
                    json.dumps(plan_to_dict(plan)),
                    notes,
                    created_at.isoformat(),
                ),
            )
            planned_id = cursor.lastrowid
        if planned_id is None:
            raise StorageError("Failed to create planned session")
        return PlannedSession(
            id=planned_id,
            user_id=user_id,
            planned_date=planned_date,
            fuel_plan=plan,
            notes=notes,
            created_at=created_at,
        )

    def get_planned_session(self, planned_session_id: int) -> PlannedSession | None:
        """Return a planned session by id, if present."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM planned_sessions WHERE id = ?", (planned_session_id,)
            ).fetchone()
        return _parse_planned_session(row) if row else None


def _parse_planned_session(row: sqlite3.Row) -> PlannedSession:
    try:
        plan = plan_from_dict(json.loads(row["fuel_plan_json"]))
    except (ValueError, KeyError, TypeError) as exc:
        raise StorageError(f"Corrupt fuel plan in planned session {row['id']}") from exc
    return PlannedSession(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        planned_date=row["planned_date"],
        fuel_plan=plan,
        notes=row["notes"],
        created_at=parse_timestamp(row["created_at"]),
    )
