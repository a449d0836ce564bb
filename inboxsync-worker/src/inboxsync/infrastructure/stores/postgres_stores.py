"""PostgreSQL implementations of the cursor store, message store and contact directory."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional

import psycopg
from loguru import logger
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from inboxsync.application.errors import PersistenceError
from inboxsync.application.ports.contact_directory import ContactDirectory
from inboxsync.application.ports.cursor_store import CursorStore
from inboxsync.application.ports.message_store import MessageStore
from inboxsync.domain.entities.attachment import Attachment
from inboxsync.domain.entities.contact import ContactMatch
from inboxsync.domain.entities.message import IngestedMessage, MessageDirection, MessageStatus
from inboxsync.domain.models import SyncCursor
from inboxsync.infrastructure.postgres_client import PostgresClientWrapper

MESSAGE_COLUMNS = (
    "id, external_id, direction, status, is_spam, mailbox, subject, preview, body, "
    "from_email, to_email, contact_id, customer_id, received_at, sent_at, attachments"
)


@contextmanager
def _cursor(client: PostgresClientWrapper) -> Generator[psycopg.Cursor, None, None]:
    conn = client.connection
    try:
        with conn.cursor(row_factory=dict_row) as cur:
            yield cur
        conn.commit()
    except psycopg.Error as e:
        conn.rollback()
        raise PersistenceError(str(e)) from e


def _row_to_message(row: dict[str, Any]) -> IngestedMessage:
    return IngestedMessage(
        id=str(row["id"]),
        external_id=row["external_id"],
        direction=MessageDirection(row["direction"]),
        status=MessageStatus(row["status"]),
        is_spam=row["is_spam"],
        mailbox=row["mailbox"],
        subject=row["subject"],
        preview=row["preview"],
        body=row["body"],
        from_address=row["from_email"],
        to_address=row["to_email"],
        contact_id=str(row["contact_id"]) if row["contact_id"] else None,
        customer_id=str(row["customer_id"]) if row["customer_id"] else None,
        received_at=row["received_at"],
        sent_at=row["sent_at"],
        attachments=[Attachment.from_dict(a) for a in (row["attachments"] or [])],
    )


class PostgresCursorStore(CursorStore):
    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    def get(self, mailbox_id: str) -> Optional[SyncCursor]:
        with _cursor(self.client) as cur:
            cur.execute(
                "SELECT mailbox_id, last_position, updated_at FROM sync_cursors WHERE mailbox_id = %s",
                (mailbox_id,),
            )
            row = cur.fetchone()
        return SyncCursor(**row) if row else None

    def set(self, mailbox_id: str, last_position: int) -> SyncCursor:
        with _cursor(self.client) as cur:
            cur.execute(
                """INSERT INTO sync_cursors (mailbox_id, last_position, updated_at)
                   VALUES (%s, %s, now())
                   ON CONFLICT (mailbox_id) DO UPDATE SET
                       last_position = GREATEST(sync_cursors.last_position, EXCLUDED.last_position),
                       updated_at = EXCLUDED.updated_at
                   RETURNING mailbox_id, last_position, updated_at""",
                (mailbox_id, last_position),
            )
            row = cur.fetchone()
        logger.info(f"Saved cursor for {mailbox_id}: UID {row['last_position']}")
        return SyncCursor(**row)


class PostgresMessageStore(MessageStore):
    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    def find_by_external_id(self, external_id: str) -> Optional[IngestedMessage]:
        with _cursor(self.client) as cur:
            cur.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM customer_messages WHERE external_id = %s",
                (external_id,),
            )
            row = cur.fetchone()
        return _row_to_message(row) if row else None

    def create(self, message: IngestedMessage) -> IngestedMessage:
        msg_id = message.id or str(uuid.uuid4())
        with _cursor(self.client) as cur:
            cur.execute(
                f"""INSERT INTO customer_messages
                    (id, external_id, direction, status, is_spam, mailbox, subject, preview, body,
                     from_email, to_email, contact_id, customer_id, received_at, sent_at, attachments)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (external_id) DO NOTHING
                    RETURNING {MESSAGE_COLUMNS}""",
                (
                    msg_id,
                    message.external_id,
                    message.direction.value,
                    message.status.value,
                    message.is_spam,
                    message.mailbox,
                    message.subject,
                    message.preview,
                    message.body,
                    message.from_address,
                    message.to_address,
                    message.contact_id,
                    message.customer_id,
                    message.received_at,
                    message.sent_at,
                    Jsonb([a.to_dict() for a in message.attachments]),
                ),
            )
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    f"SELECT {MESSAGE_COLUMNS} FROM customer_messages WHERE external_id = %s",
                    (message.external_id,),
                )
                row = cur.fetchone()
        return _row_to_message(row)


class PostgresContactDirectory(ContactDirectory):
    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    def find_by_email(self, email: str) -> Optional[ContactMatch]:
        with _cursor(self.client) as cur:
            cur.execute(
                "SELECT id, customer_id FROM customer_contacts WHERE lower(email) = %s LIMIT 1",
                (email.strip().lower(),),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return ContactMatch(
            contact_id=str(row["id"]),
            customer_id=str(row["customer_id"]) if row["customer_id"] else None,
        )
