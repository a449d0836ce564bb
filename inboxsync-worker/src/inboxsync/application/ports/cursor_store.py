from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.models import SyncCursor

class CursorStore(Protocol):
    def get(self, mailbox_id: str) -> Optional[SyncCursor]: ...
    def set(self, mailbox_id: str, last_position: int) -> SyncCursor: ...
