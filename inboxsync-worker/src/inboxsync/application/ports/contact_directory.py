from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.entities.contact import ContactMatch

class ContactDirectory(Protocol):
    def find_by_email(self, email: str) -> Optional[ContactMatch]: ...
