"""Domain models and entities."""

from inboxsync.domain.entities.attachment import Attachment
from inboxsync.domain.entities.contact import ContactMatch
from inboxsync.domain.entities.message import IngestedMessage, MessageDirection, MessageStatus
from inboxsync.domain.models import (
    Encryption,
    MailboxCredentials,
    MailboxSyncResult,
    SyncCursor,
    SyncIssue,
    SyncIssueKind,
    SyncReport,
)

__all__ = [
    "Attachment",
    "ContactMatch",
    "IngestedMessage",
    "MessageDirection",
    "MessageStatus",
    "Encryption",
    "MailboxCredentials",
    "MailboxSyncResult",
    "SyncCursor",
    "SyncIssue",
    "SyncIssueKind",
    "SyncReport",
]
