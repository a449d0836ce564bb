"""Map fetched RFC 822 sources onto the canonical inbound message record."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from email import policy
from email.parser import BytesParser
from typing import Optional

from inboxsync.application.errors import MessageParseError
from inboxsync.application.ports.mailbox_client import RawMessage
from inboxsync.domain.entities.message import IngestedMessage
from inboxsync.infrastructure.email.rfc822 import (
    as_text,
    build_preview,
    extract_attachments,
    first_address,
)

DEFAULT_SUBJECT = "(no subject)"
EMPTY_BODY = "(no content)"


def external_id_for(message_id: Optional[str], raw_source: bytes) -> str:
    """Message-ID when present, else a content hash of the raw source."""
    if message_id and message_id.strip():
        return message_id.strip()
    return "sha256:" + hashlib.sha256(raw_source).hexdigest()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _header_date(em) -> Optional[datetime]:
    # Date parsing can be messy; treat anything unparseable as absent
    try:
        dt = em.get("Date")
        return dt.datetime if dt is not None and dt.datetime else None
    except (AttributeError, TypeError, ValueError):
        return None


def raw_to_ingested_message(
    raw: RawMessage,
    mailbox: str,
    is_spam: bool = False,
    now: Optional[datetime] = None,
) -> IngestedMessage:
    """Normalize one fetched message. Raises MessageParseError when unreadable."""
    if not raw.raw_source:
        raise MessageParseError(f"UID {raw.position} has no source", position=raw.position)

    try:
        em = BytesParser(policy=policy.default).parsebytes(raw.raw_source)

        subject = str(em.get("Subject") or "").strip() or DEFAULT_SUBJECT
        text = as_text(em)
        received_at = _header_date(em) or raw.received_at or now or datetime.now(timezone.utc)
        received_at = _as_utc(received_at)

        return IngestedMessage(
            external_id=external_id_for(str(em.get("Message-ID") or ""), raw.raw_source),
            mailbox=mailbox,
            subject=subject,
            preview=build_preview(text),
            body=text or EMPTY_BODY,
            from_address=first_address(em, "From"),
            to_address=first_address(em, "To"),
            received_at=received_at,
            sent_at=received_at,
            is_spam=is_spam,
            attachments=extract_attachments(em),
        )
    except MessageParseError:
        raise
    except Exception as e:
        raise MessageParseError(f"UID {raw.position} could not be parsed: {e}", position=raw.position) from e
