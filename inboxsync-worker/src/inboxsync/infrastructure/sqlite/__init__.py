"""SQLite database for local storage."""

from inboxsync.infrastructure.sqlite.client import SQLiteClient

__all__ = ["SQLiteClient"]
