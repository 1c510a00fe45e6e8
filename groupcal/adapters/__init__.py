"""
Adapters layer - SQLite stores and the REST backend client.
"""

from .api_client import ApiCalendarClient
from .database import Database
from .sqlite_stores import SqliteEventStore, SqliteGroupStore, SqliteMeetingStore, SqliteUserStore

__all__ = [
    "ApiCalendarClient",
    "Database",
    "SqliteEventStore",
    "SqliteGroupStore",
    "SqliteMeetingStore",
    "SqliteUserStore",
]
