from __future__ import annotations
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Mapping, Optional, Protocol

from inboxsync.domain.models import MailboxCredentials

@dataclass(frozen=True)
class RawMessage:
    # IMAP UID within the selected folder
    position: int
    raw_source: Optional[bytes]
    received_at: Optional[datetime] = None  # server INTERNALDATE
    envelope: Mapping[str, str] = field(default_factory=dict)

@dataclass(frozen=True)
class FolderInfo:
    path: str
    flags: tuple[str, ...] = ()

class MailboxSession(Protocol):
    def list_folders(self) -> list[FolderInfo]: ...
    def select(self, folder: str) -> AbstractContextManager[None]: ...
    def fetch(self, start_position: int) -> Iterator[RawMessage]: ...
    def close(self) -> None: ...
    def __enter__(self) -> "MailboxSession": ...
    def __exit__(self, *exc) -> None: ...

class MailboxClient(Protocol):
    def connect(self, credentials: MailboxCredentials) -> MailboxSession: ...
