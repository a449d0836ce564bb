"""Infrastructure layer - IMAP adapter, stores and configuration."""

from inboxsync.infrastructure.settings import (
    Settings,
    SettingsCredentialsProvider,
    StaticCredentialsProvider,
    get_settings,
)
from inboxsync.infrastructure.sqlite import SQLiteClient

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "SettingsCredentialsProvider",
    "StaticCredentialsProvider",
    # SQLite (local)
    "SQLiteClient",
]
