"""SQLite implementation of MessageStore for ingested customer mail."""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from inboxsync.application.ports.message_store import MessageStore
from inboxsync.domain.entities.attachment import Attachment
from inboxsync.domain.entities.message import IngestedMessage, MessageDirection, MessageStatus
from inboxsync.infrastructure.sqlite.client import SQLiteClient


def _row_to_message(row: sqlite3.Row) -> IngestedMessage:
    return IngestedMessage(
        id=row["id"],
        external_id=row["external_id"],
        direction=MessageDirection(row["direction"]),
        status=MessageStatus(row["status"]),
        is_spam=bool(row["is_spam"]),
        mailbox=row["mailbox"],
        subject=row["subject"],
        preview=row["preview"],
        body=row["body"],
        from_address=row["from_email"],
        to_address=row["to_email"],
        contact_id=row["contact_id"],
        customer_id=row["customer_id"],
        received_at=datetime.fromisoformat(row["received_at"]),
        sent_at=datetime.fromisoformat(row["sent_at"]),
        attachments=[Attachment.from_dict(a) for a in json.loads(row["attachments_json"] or "[]")],
    )


class SQLiteMessageStore(MessageStore):
    """Append-only store keyed by external id."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    def find_by_external_id(self, external_id: str) -> Optional[IngestedMessage]:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT * FROM customer_messages WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        return _row_to_message(row) if row else None

    def create(self, message: IngestedMessage) -> IngestedMessage:
        """Insert unless the external id already exists; return the stored row."""
        msg_id = message.id or str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        with self.client.connection() as conn:
            cursor = conn.execute(
                """INSERT INTO customer_messages
                   (id, external_id, direction, status, is_spam, mailbox, subject, preview, body,
                    from_email, to_email, contact_id, customer_id, received_at, sent_at,
                    attachments_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(external_id) DO NOTHING""",
                (
                    msg_id,
                    message.external_id,
                    message.direction.value,
                    message.status.value,
                    int(message.is_spam),
                    message.mailbox,
                    message.subject,
                    message.preview,
                    message.body,
                    message.from_address,
                    message.to_address,
                    message.contact_id,
                    message.customer_id,
                    message.received_at.isoformat(),
                    message.sent_at.isoformat(),
                    json.dumps([a.to_dict() for a in message.attachments]),
                    now,
                ),
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT * FROM customer_messages WHERE external_id = ?",
                    (message.external_id,),
                ).fetchone()
                logger.debug(f"Concurrent insert for {message.external_id}, returning existing row")
                return _row_to_message(row)

        return replace(message, id=msg_id)

    def count(self) -> int:
        with self.client.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM customer_messages").fetchone()[0]
