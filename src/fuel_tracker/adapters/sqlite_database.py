"""SQLite connection management and schema."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from fuel_tracker.errors import StorageError

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fuel_products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL DEFAULT 1,
    name TEXT NOT NULL,
    product_type TEXT,
    carbs_per_serving REAL NOT NULL CHECK (carbs_per_serving > 0),
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_fuel_products_active
    ON fuel_products(user_id, deleted_at);

CREATE TABLE IF NOT EXISTS planned_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL DEFAULT 1,
    planned_date TEXT NOT NULL,
    fuel_plan_json TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS session_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL DEFAULT 1,
    planned_session_id INTEGER,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    duration_actual_minutes INTEGER,
    session_status TEXT NOT NULL DEFAULT 'active',
    post_session_notes TEXT,
    FOREIGN KEY (planned_session_id) REFERENCES planned_sessions(id)
        ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_session_logs_status ON session_logs(session_status);

CREATE TABLE IF NOT EXISTS session_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_log_id INTEGER NOT NULL,
    event_type TEXT NOT NULL,
    timestamp_offset_seconds INTEGER NOT NULL,
    actual_timestamp TEXT NOT NULL,
    data_json TEXT NOT NULL,
    FOREIGN KEY (session_log_id) REFERENCES session_logs(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_session_events_time
    ON session_events(session_log_id, timestamp_offset_seconds);

CREATE TABLE IF NOT EXISTS app_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


@dataclass
class SqliteDatabase:
    """Opens one connection per unit of work.

    Each ``connection()`` block is a transaction: it commits on success and
    rolls back on any error. SQLite errors surface as ``StorageError``.
    """

    path: Path

    @classmethod
    def create(cls, path: str | Path) -> "SqliteDatabase":
        """Create the database file and schema if needed."""
        database = cls(Path(path))
        database.path.parent.mkdir(parents=True, exist_ok=True)
        database.initialize_schema()
        return database

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection wrapped in a transaction."""
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize_schema(self) -> None:
        """Create all tables if they don't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
