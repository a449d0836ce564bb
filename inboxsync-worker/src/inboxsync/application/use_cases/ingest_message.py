"""Persist normalized inbound messages exactly once, linked to known contacts."""

from __future__ import annotations

import uuid
from dataclasses import replace
from enum import Enum

from loguru import logger

from inboxsync.application.errors import PersistenceError
from inboxsync.application.ports.contact_directory import ContactDirectory
from inboxsync.application.ports.message_store import MessageStore
from inboxsync.domain.entities.message import IngestedMessage


class IngestOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"


class IngestMessageUseCase:
    """Dedup-then-create writer for normalized messages.

    Flow:
    1. Look up the external id; an existing row means an earlier or
       overlapping run already stored this message
    2. Resolve the sender against the contact directory
    3. Create the record; a returned row with another id means a
       concurrent writer stored it first
    """

    def __init__(self, messages: MessageStore, contacts: ContactDirectory) -> None:
        self.messages = messages
        self.contacts = contacts

    def ingest(self, message: IngestedMessage) -> IngestOutcome:
        """Store one message. Raises PersistenceError when the store fails."""
        try:
            existing = self.messages.find_by_external_id(message.external_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Lookup of {message.external_id} failed: {e}") from e

        if existing is not None:
            logger.debug(f"Message skipped, already stored ({existing.id}): {message.external_id}")
            return IngestOutcome.DUPLICATE

        message = self._associate_contact(message)
        # the store keeps this id unless a concurrent insert won
        message = replace(message, id=message.id or str(uuid.uuid4()))

        try:
            saved = self.messages.create(message)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Create of {message.external_id} failed: {e}") from e

        if saved.id != message.id:
            logger.debug(f"Message stored concurrently ({saved.id}): {message.external_id}")
            return IngestOutcome.DUPLICATE

        logger.info(
            f"Stored message {saved.id} from {saved.from_address or 'unknown sender'} "
            f"(customer={saved.customer_id or '-'}, spam={saved.is_spam}): {saved.subject[:50]}"
        )
        return IngestOutcome.CREATED

    def _associate_contact(self, message: IngestedMessage) -> IngestedMessage:
        if not message.from_address:
            return message

        try:
            match = self.contacts.find_by_email(message.from_address)
        except Exception as e:
            # left unassociated for manual triage
            logger.warning(f"Contact lookup for {message.from_address} failed: {e}")
            return message

        if match is None:
            return message
        return replace(message, contact_id=match.contact_id, customer_id=match.customer_id)
