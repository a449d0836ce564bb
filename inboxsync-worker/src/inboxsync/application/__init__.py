"""Application layer - ports, use cases and sync orchestration."""

from inboxsync.application.errors import (
    ConnectionFailure,
    MailSyncError,
    MessageParseError,
    PersistenceError,
)
from inboxsync.application.use_cases.ingest_message import IngestMessageUseCase, IngestOutcome
from inboxsync.application.use_cases.sync_mailbox import MailSyncService

__all__ = [
    "ConnectionFailure",
    "MailSyncError",
    "MessageParseError",
    "PersistenceError",
    "IngestMessageUseCase",
    "IngestOutcome",
    "MailSyncService",
]
