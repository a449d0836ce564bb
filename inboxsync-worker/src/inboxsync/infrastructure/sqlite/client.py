"""SQLite client for the local message store, sync cursors and contact directory."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from loguru import logger

from inboxsync.application.errors import PersistenceError

SCHEMA = """
    PRAGMA journal_mode=WAL;

    CREATE TABLE IF NOT EXISTS sync_cursors (
        mailbox_id TEXT PRIMARY KEY,
        last_position INTEGER NOT NULL CHECK(last_position >= 0),
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS customer_messages (
        id TEXT PRIMARY KEY,
        external_id TEXT NOT NULL UNIQUE,
        direction TEXT NOT NULL CHECK(direction IN ('INBOUND','OUTBOUND')),
        status TEXT NOT NULL,
        is_spam INTEGER NOT NULL DEFAULT 0,
        mailbox TEXT NOT NULL,
        subject TEXT NOT NULL,
        preview TEXT NOT NULL,
        body TEXT NOT NULL,
        from_email TEXT,
        to_email TEXT,
        contact_id TEXT,
        customer_id TEXT,
        received_at TEXT NOT NULL,
        sent_at TEXT NOT NULL,
        attachments_json TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_customer_messages_customer
        ON customer_messages(customer_id, received_at);

    CREATE TABLE IF NOT EXISTS customer_contacts (
        id TEXT PRIMARY KEY,
        customer_id TEXT,
        email TEXT NOT NULL,
        name TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_customer_contacts_email
        ON customer_contacts(email);
"""


class SQLiteClient:
    """SQLite database holding everything the sync engine reads and writes."""

    def __init__(self, db_path: str | Path = "/app/data/inboxsync.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.executescript(SCHEMA)
            logger.info(f"SQLite database initialized at {self.db_path}")

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections; errors surface as PersistenceError."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
