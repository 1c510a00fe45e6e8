"""
SQLite database handle and schema.

Stores receive a ``Database`` at construction and acquire a connection per
operation through ``Database.connection()``; nothing is shared at module
level.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pendulum
from pendulum import DateTime

from ..domain.exceptions import StoreError

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT UNIQUE NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    creator_id INTEGER REFERENCES users(id),
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS user_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    group_id INTEGER NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
    role TEXT DEFAULT 'member',
    joined_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, group_id)
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT DEFAULT '',
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    location TEXT DEFAULT '',
    is_busy INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS meetings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT DEFAULT '',
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    location TEXT DEFAULT '',
    creator_id INTEGER REFERENCES users(id),
    status TEXT DEFAULT 'scheduled'
);

CREATE TABLE IF NOT EXISTS meeting_participants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id INTEGER NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status TEXT DEFAULT 'pending',
    UNIQUE(meeting_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_events_user_time ON events (user_id, start_time);
CREATE INDEX IF NOT EXISTS idx_user_groups_group ON user_groups (group_id);
"""

# Timestamps are stored as UTC text so that string comparison orders them.
DB_TIMESTAMP_FORMAT = "YYYY-MM-DD HH:mm:ss"


def to_db_timestamp(dt: DateTime) -> str:
    """Serialize a datetime as sortable UTC text."""
    return dt.in_timezone("UTC").format(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> DateTime:
    """Parse a stored UTC timestamp."""
    return pendulum.parse(value, tz="UTC")


class Database:
    """Handle to a SQLite database file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection for one unit of work.

        Commits when the block succeeds, rolls back when it raises and
        always closes the connection. SQLite errors surface as StoreError.
        """
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"Database operation failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create all tables if they do not exist yet."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA)
