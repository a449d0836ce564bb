"""SQLite-backed cursor store for mailbox sync positions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from inboxsync.application.ports.cursor_store import CursorStore
from inboxsync.domain.models import SyncCursor
from inboxsync.infrastructure.sqlite.client import SQLiteClient


class SQLiteCursorStore(CursorStore):
    """Store one cursor per mailbox; positions never move backwards."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    def get(self, mailbox_id: str) -> Optional[SyncCursor]:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT mailbox_id, last_position, updated_at FROM sync_cursors WHERE mailbox_id = ?",
                (mailbox_id,),
            ).fetchone()

        if row is None:
            logger.debug(f"No cursor found for {mailbox_id}")
            return None

        return SyncCursor(
            mailbox_id=row["mailbox_id"],
            last_position=row["last_position"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def set(self, mailbox_id: str, last_position: int) -> SyncCursor:
        now = datetime.now(timezone.utc).isoformat()

        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO sync_cursors (mailbox_id, last_position, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(mailbox_id) DO UPDATE SET
                       last_position = MAX(sync_cursors.last_position, excluded.last_position),
                       updated_at = excluded.updated_at""",
                (mailbox_id, last_position, now),
            )
            row = conn.execute(
                "SELECT last_position FROM sync_cursors WHERE mailbox_id = ?",
                (mailbox_id,),
            ).fetchone()

        logger.info(f"Saved cursor for {mailbox_id}: UID {row['last_position']}")
        return SyncCursor(
            mailbox_id=mailbox_id,
            last_position=row["last_position"],
            updated_at=datetime.fromisoformat(now),
        )
