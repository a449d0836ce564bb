"""Error kinds raised by sync stages and contained by the orchestrator."""

from __future__ import annotations

from typing import Optional


class MailSyncError(Exception):
    """Base class for mailbox sync failures."""


class ConnectionFailure(MailSyncError):
    """Authentication or network failure talking to the mailbox server."""


class MessageParseError(MailSyncError):
    """A single fetched message could not be read or normalized."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.position = position


class PersistenceError(MailSyncError):
    """A store read or write failed."""
