"""Domain models for the mailbox sync engine."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

DEFAULT_MAILBOX = "INBOX"
DEFAULT_IMAP_PORT = 993


class Encryption(str, Enum):
    """Transport security for the IMAP connection."""

    NONE = "none"
    SSL = "ssl"  # implicit TLS (IMAPS)
    TLS = "tls"  # STARTTLS upgrade on a plain connection


class MailboxCredentials(BaseModel):
    """Connection settings for the synced mailbox. Read-only to the engine."""

    host: str
    port: int = DEFAULT_IMAP_PORT
    username: str
    secret: SecretStr
    encryption: Encryption = Encryption.SSL
    mailbox: str = DEFAULT_MAILBOX
    spam_mailbox: str | None = None
    since_days: int | None = Field(default=None, ge=0)
    verified_at: datetime | None = None

    @field_validator("encryption", mode="before")
    @classmethod
    def _normalize_encryption(cls, value: Any) -> Any:
        if isinstance(value, Encryption):
            return value
        normalized = str(value or "").strip().lower()
        if normalized in ("none", "ssl", "tls"):
            return normalized
        return Encryption.SSL

    @field_validator("port", mode="before")
    @classmethod
    def _normalize_port(cls, value: Any) -> Any:
        try:
            return int(value)
        except (TypeError, ValueError):
            return DEFAULT_IMAP_PORT

    @field_validator("mailbox", mode="before")
    @classmethod
    def _default_mailbox(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return DEFAULT_MAILBOX
        return str(value).strip()

    @field_validator("spam_mailbox", mode="before")
    @classmethod
    def _blank_spam_mailbox(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    def mailbox_id(self, folder: str | None = None) -> str:
        """Cursor key for a folder of this account: ``user@host:INBOX``."""
        return f"{self.username.strip().lower()}:{folder or self.mailbox}"

    def cutoff(self, now: datetime) -> datetime | None:
        """Oldest receive time still ingested, or None when unbounded."""
        if self.since_days is None:
            return None
        return now - timedelta(days=self.since_days)


class SyncCursor(BaseModel):
    """Bookmark into a mailbox's position order."""

    mailbox_id: str
    last_position: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncIssueKind(str, Enum):
    """Stage at which a sync problem happened."""

    CONNECTION = "connection"
    PARSE = "parse"
    PERSISTENCE = "persistence"


class SyncIssue(BaseModel):
    """A contained failure recorded during a run."""

    kind: SyncIssueKind
    mailbox_id: str
    message: str
    position: int | None = None


class MailboxSyncResult(BaseModel):
    """Outcome for one mailbox folder within a run."""

    mailbox_id: str
    folder: str
    is_spam: bool = False
    previous_position: int = 0
    committed_position: int = 0
    handled: int = 0
    ingested: int = 0
    duplicates: int = 0
    skipped_cutoff: int = 0
    skipped_parse: int = 0
    failed: int = 0

    @property
    def charged(self) -> int:
        """Messages counted against the per-run cap; duplicates are free."""
        return self.handled - self.duplicates


class SyncReport(BaseModel):
    """Aggregated outcome of one orchestrator run."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    mailboxes: list[MailboxSyncResult] = Field(default_factory=list)
    issues: list[SyncIssue] = Field(default_factory=list)

    @property
    def handled(self) -> int:
        return sum(m.handled for m in self.mailboxes)

    @property
    def ingested(self) -> int:
        return sum(m.ingested for m in self.mailboxes)

    @property
    def charged(self) -> int:
        return sum(m.charged for m in self.mailboxes)

    @property
    def ok(self) -> bool:
        return not self.issues

    def issues_of(self, kind: SyncIssueKind) -> list[SyncIssue]:
        return [issue for issue in self.issues if issue.kind == kind]
