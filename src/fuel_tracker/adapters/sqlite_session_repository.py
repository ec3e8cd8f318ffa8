"""SQLite-backed session log repository and recovery pointer."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

from fuel_tracker.adapters.serialization import parse_timestamp
from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.domain.sessions import SessionLog, SessionStatus
from fuel_tracker.errors import StorageError
from fuel_tracker.services.checkpoints import CheckpointRepository
from fuel_tracker.services.lifecycle import SessionLogRepository

POINTER_KEY = "active_session_id"


@dataclass
class SqliteSessionRepository(SessionLogRepository, CheckpointRepository):
    """SQLite implementation for session logs and checkpoints."""

    database: SqliteDatabase

    def create_session(
        self, user_id: int, planned_session_id: int | None, started_at: datetime
    ) -> SessionLog:
        """Insert an active session row and return it."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO session_logs
                    (user_id, planned_session_id, started_at, session_status)
                VALUES (?, ?, ?, ?)
                """,
                (
                    user_id,
                    planned_session_id,
                    started_at.isoformat(),
                    SessionStatus.ACTIVE.value,
                ),
            )
            row = conn.execute(
                "SELECT * FROM session_logs WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        if row is None:
            raise StorageError("Failed to create session")
        return _parse_session(row)

    def get_session(self, session_id: int) -> SessionLog | None:
        """Return a session by id, if present."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM session_logs WHERE id = ?", (session_id,)
            ).fetchone()
        return _parse_session(row) if row else None

    def list_active_sessions(self) -> list[SessionLog]:
        """Return every active session, newest first."""
        with self.database.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM session_logs
                WHERE session_status = ?
                ORDER BY started_at DESC, id DESC
                """,
                (SessionStatus.ACTIVE.value,),
            ).fetchall()
        return [_parse_session(row) for row in rows]

    def finish_session(
        self,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        duration_minutes: int | None,
        notes: str | None,
    ) -> bool:
        """Move an active session to a terminal status."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE session_logs
                SET session_status = ?,
                    ended_at = ?,
                    duration_actual_minutes = COALESCE(?, duration_actual_minutes),
                    post_session_notes = COALESCE(?, post_session_notes)
                WHERE id = ? AND session_status = ?
                """,
                (
                    status.value,
                    ended_at.isoformat(),
                    duration_minutes,
                    notes,
                    session_id,
                    SessionStatus.ACTIVE.value,
                ),
            )
            return cursor.rowcount == 1

    def update_notes(self, session_id: int, notes: str | None) -> bool:
        """Replace closing notes."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                "UPDATE session_logs SET post_session_notes = ? WHERE id = ?",
                (notes, session_id),
            )
            return cursor.rowcount == 1

    def checkpoint(self, session_id: int, duration_minutes: int) -> bool:
        """Write duration and pointer in one transaction while still active."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE session_logs
                SET duration_actual_minutes = ?
                WHERE id = ? AND session_status = ?
                """,
                (duration_minutes, session_id, SessionStatus.ACTIVE.value),
            )
            if cursor.rowcount != 1:
                return False
            conn.execute(
                """
                INSERT INTO app_metadata (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (POINTER_KEY, str(session_id), datetime.now(tz=UTC).isoformat()),
            )
            return True

    def get_pointer(self) -> int | None:
        """Return the session id stored in the recovery pointer."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_metadata WHERE key = ?", (POINTER_KEY,)
            ).fetchone()
        if row is None:
            return None
        value = str(row["value"])
        return int(value) if value.isdigit() else None

    def clear_pointer(self) -> None:
        """Delete the recovery pointer."""
        with self.database.connection() as conn:
            conn.execute("DELETE FROM app_metadata WHERE key = ?", (POINTER_KEY,))

    def clear_pointer_if(self, session_id: int) -> bool:
        """Delete the pointer only while it refers to the session."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM app_metadata WHERE key = ? AND value = ?",
                (POINTER_KEY, str(session_id)),
            )
            return cursor.rowcount == 1


def _parse_session(row: sqlite3.Row) -> SessionLog:
    """Parse a session_logs row into a domain model."""
    started_at = parse_timestamp(row["started_at"])
    if started_at is None:
        raise StorageError(f"Session {row['id']} has no start time")
    return SessionLog(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        planned_session_id=row["planned_session_id"],
        started_at=started_at,
        status=SessionStatus(row["session_status"]),
        ended_at=parse_timestamp(row["ended_at"]),
        duration_actual_minutes=row["duration_actual_minutes"],
        post_session_notes=row["post_session_notes"],
    )
