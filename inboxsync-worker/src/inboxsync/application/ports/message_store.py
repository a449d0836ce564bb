from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.entities.message import IngestedMessage

class MessageStore(Protocol):
    def find_by_external_id(self, external_id: str) -> Optional[IngestedMessage]: ...

    # Insert-if-absent on external_id; returns the stored row either way.
    def create(self, message: IngestedMessage) -> IngestedMessage: ...
