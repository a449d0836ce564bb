"""Store implementations."""

from inboxsync.infrastructure.stores.sqlite_contact_directory import SQLiteContactDirectory
from inboxsync.infrastructure.stores.sqlite_cursor_store import SQLiteCursorStore
from inboxsync.infrastructure.stores.sqlite_message_store import SQLiteMessageStore

__all__ = [
    "SQLiteContactDirectory",
    "SQLiteCursorStore",
    "SQLiteMessageStore",
]
