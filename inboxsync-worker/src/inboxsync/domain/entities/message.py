from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from inboxsync.domain.entities.attachment import Attachment


class MessageDirection(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class MessageStatus(str, Enum):
    RECEIVED = "RECEIVED"
    READ = "READ"
    ARCHIVED = "ARCHIVED"


@dataclass(frozen=True)
class IngestedMessage:
    external_id: str  # dedup key, unique in the store
    mailbox: str
    subject: str
    preview: str
    body: str
    from_address: Optional[str]
    to_address: Optional[str]
    received_at: datetime
    sent_at: datetime
    direction: MessageDirection = MessageDirection.INBOUND
    status: MessageStatus = MessageStatus.RECEIVED
    is_spam: bool = False
    contact_id: Optional[str] = None
    customer_id: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    id: Optional[str] = None  # assigned by the store
