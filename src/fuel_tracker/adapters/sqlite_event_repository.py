"""SQLite-backed append-only session event log."""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime

from fuel_tracker.adapters.serialization import (
    parse_timestamp,
    payload_from_dict,
    payload_to_dict,
)
from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.domain.sessions import EventPayload, SessionEvent
from fuel_tracker.errors import StorageError
from fuel_tracker.services.lifecycle import SessionEventRepository


@dataclass
class SqliteEventRepository(SessionEventRepository):
    """SQLite implementation for session events."""

    database: SqliteDatabase

    def create_event(
        self,
        session_id: int,
        offset_seconds: int,
        actual_timestamp: datetime,
        payload: EventPayload,
    ) -> SessionEvent:
        """Append an event and return it."""
        event_type, data = payload_to_dict(payload)
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO session_events
                    (session_log_id, event_type, timestamp_offset_seconds,
                     actual_timestamp, data_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    event_type,
                    offset_seconds,
                    actual_timestamp.isoformat(),
                    json.dumps(data),
                ),
            )
            event_id = cursor.lastrowid
        if event_id is None:
            raise StorageError("Failed to create session event")
        return SessionEvent(
            id=event_id,
            session_log_id=session_id,
            offset_seconds=offset_seconds,
            actual_timestamp=actual_timestamp,
            payload=payload,
        )

    def list_events(
        self, session_id: int, event_type: str | None = None
    ) -> list[SessionEvent]:
        """Return events ordered by offset, optionally filtered by type."""
        query = "SELECT * FROM session_events WHERE session_log_id = ?"
        params: list[object] = [session_id]
        if event_type is not None:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY timestamp_offset_seconds, id"
        with self.database.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_parse_event(row) for row in rows]

    def count_events(self, session_id: int) -> int:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM session_events WHERE session_log_id = ?",
                (session_id,),
            ).fetchone()
        return int(row["total"]) if row else 0

    def delete_event(self, event_id: int) -> bool:
        with self.database.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM session_events WHERE id = ?", (event_id,)
            )
            return cursor.rowcount == 1


def _parse_event(row: sqlite3.Row) -> SessionEvent:
    try:
        data = json.loads(row["data_json"])
        payload = payload_from_dict(row["event_type"], data)
    except (ValueError, KeyError, TypeError) as exc:
        raise StorageError(f"Corrupt session event {row['id']}: {exc}") from exc
    actual_timestamp = parse_timestamp(row["actual_timestamp"])
    if actual_timestamp is None:
        raise StorageError(f"Session event {row['id']} has no timestamp")
    return SessionEvent(
        id=int(row["id"]),
        session_log_id=int(row["session_log_id"]),
        offset_seconds=int(row["timestamp_offset_seconds"]),
        actual_timestamp=actual_timestamp,
        payload=payload,
    )
