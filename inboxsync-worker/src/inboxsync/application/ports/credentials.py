from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.models import MailboxCredentials

class CredentialsProvider(Protocol):
    def get_credentials(self) -> Optional[MailboxCredentials]: ...
