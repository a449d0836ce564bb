"""SQLite contact directory used to associate inbound mail with customers."""

from __future__ import annotations

import uuid
from typing import Optional

from inboxsync.application.ports.contact_directory import ContactDirectory
from inboxsync.domain.entities.contact import ContactMatch
from inboxsync.infrastructure.sqlite.client import SQLiteClient


class SQLiteContactDirectory(ContactDirectory):
    def __init__(self, client: SQLiteClient):
        self.client = client

    def find_by_email(self, email: str) -> Optional[ContactMatch]:
        with self.client.connection() as conn:
            row = conn.execute(
                """SELECT id, customer_id FROM customer_contacts
                   WHERE lower(trim(email)) = ?
                   ORDER BY rowid
                   LIMIT 1""",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return ContactMatch(contact_id=row["id"], customer_id=row["customer_id"])

    def add_contact(self, email: str, customer_id: Optional[str] = None, name: Optional[str] = None) -> ContactMatch:
        contact_id = str(uuid.uuid4())
        with self.client.connection() as conn:
            conn.execute(
                "INSERT INTO customer_contacts (id, customer_id, email, name) VALUES (?, ?, ?, ?)",
                (contact_id, customer_id, email, name),
            )
        return ContactMatch(contact_id=contact_id, customer_id=customer_id)
