"""Pytest fixtures for mailbox sync testing.

Provides reusable fakes for the sync engine's collaborators:
- An in-process mailbox server (folders of RawMessages, call counters,
  injectable connection failures)
- In-memory cursor store, message store and contact directory
- A fixed clock and a credentials factory

Usage:
    def test_first_run(make_service, mailbox, raw_message):
        mailbox.add("INBOX", raw_message(1))
        report = make_service().run()
"""

from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Iterator, Optional

import pytest

from inboxsync.application.errors import ConnectionFailure, PersistenceError
from inboxsync.application.ports.mailbox_client import FolderInfo, RawMessage
from inboxsync.application.use_cases.ingest_message import IngestMessageUseCase
from inboxsync.application.use_cases.sync_mailbox import MailSyncService
from inboxsync.domain.entities.contact import ContactMatch
from inboxsync.domain.entities.message import IngestedMessage
from inboxsync.domain.models import MailboxCredentials, SyncCursor
from inboxsync.infrastructure.settings import StaticCredentialsProvider

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def build_email(
    subject: Optional[str] = "Angebot Dachsanierung",
    sender: str = "Alice Example <Alice@Example.com>",
    to: str = "Inbox <crm@firma.de>",
    body: Optional[str] = "Hallo,\n\nbitte um ein Angebot.\n\nGruss Alice",
    html: Optional[str] = None,
    message_id: Optional[str] = None,
    date: Optional[datetime] = None,
    attachments: tuple = (),
) -> bytes:
    """RFC 822 bytes for a simple customer mail."""
    msg = EmailMessage()
    if subject is not None:
        msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    if message_id:
        msg["Message-ID"] = message_id
    if date:
        msg["Date"] = format_datetime(date)

    if body is not None:
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
    elif html:
        msg.set_content(html, subtype="html")

    for name, data, mime in attachments:
        maintype, subtype = mime.split("/")
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=name)
    return msg.as_bytes()


class FakeMailboxServer:
    """In-process stand-in for an IMAP server, counting protocol calls."""

    def __init__(self) -> None:
        self.folders: dict[str, list[RawMessage]] = {"INBOX": []}
        self.folder_flags: dict[str, tuple[str, ...]] = {}
        self.connect_calls = 0
        self.select_calls = 0
        self.fetch_calls = 0
        self.released = 0
        self.closed = 0
        self.fail_connect: Optional[Exception] = None
        self.fail_at_position: Optional[int] = None
        self.on_fetch = None

    def add(self, folder: str, *messages: RawMessage) -> None:
        self.folders.setdefault(folder, []).extend(messages)

    def connect(self, credentials: MailboxCredentials) -> "FakeSession":
        self.connect_calls += 1
        if self.fail_connect is not None:
            raise self.fail_connect
        return FakeSession(self)


class FakeSession:
    def __init__(self, server: FakeMailboxServer) -> None:
        self.server = server
        self.selected: Optional[str] = None

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.server.closed += 1

    def list_folders(self) -> list[FolderInfo]:
        return [
            FolderInfo(path=name, flags=self.server.folder_flags.get(name, ()))
            for name in self.server.folders
        ]

    @contextmanager
    def select(self, folder: str) -> Iterator[None]:
        if folder not in self.server.folders:
            raise ConnectionFailure(f"Failed to select folder {folder}")
        self.server.select_calls += 1
        self.selected = folder
        try:
            yield
        finally:
            self.selected = None
            self.server.released += 1

    def fetch(self, start_position: int) -> Iterator[RawMessage]:
        self.server.fetch_calls += 1
        if self.server.on_fetch is not None:
            self.server.on_fetch()
        pending = sorted(
            (m for m in self.server.folders[self.selected] if m.position >= start_position),
            key=lambda m: m.position,
        )
        for message in pending:
            if self.server.fail_at_position == message.position:
                raise ConnectionFailure("connection reset by peer")
            yield message


class InMemoryCursorStore:
    def __init__(self) -> None:
        self.cursors: dict[str, SyncCursor] = {}
        self.history: list[tuple[str, int]] = []

    def get(self, mailbox_id: str) -> Optional[SyncCursor]:
        return self.cursors.get(mailbox_id)

    def set(self, mailbox_id: str, last_position: int) -> SyncCursor:
        self.history.append((mailbox_id, last_position))
        cursor = SyncCursor(mailbox_id=mailbox_id, last_position=last_position, updated_at=NOW)
        self.cursors[mailbox_id] = cursor
        return cursor

    def position(self, mailbox_id: str = "crm@firma.de:INBOX") -> int:
        cursor = self.cursors.get(mailbox_id)
        return cursor.last_position if cursor else 0


class InMemoryMessageStore:
    def __init__(self) -> None:
        self.rows: dict[str, IngestedMessage] = {}
        self.failing_external_ids: set[str] = set()
        self.create_calls = 0

    def find_by_external_id(self, external_id: str) -> Optional[IngestedMessage]:
        return self.rows.get(external_id)

    def create(self, message: IngestedMessage) -> IngestedMessage:
        self.create_calls += 1
        if message.external_id in self.failing_external_ids:
            raise PersistenceError(f"disk full while writing {message.external_id}")
        if message.external_id in self.rows:
            return self.rows[message.external_id]
        saved = replace(message, id=message.id or f"msg-{len(self.rows) + 1}")
        self.rows[message.external_id] = saved
        return saved


class InMemoryContactDirectory:
    def __init__(self) -> None:
        self.contacts: dict[str, ContactMatch] = {}
        self.lookups: list[str] = []

    def find_by_email(self, email: str) -> Optional[ContactMatch]:
        self.lookups.append(email)
        return self.contacts.get(email)


@pytest.fixture
def credentials_factory():
    def _make(**overrides) -> MailboxCredentials:
        data = {
            "host": "imap.firma.de",
            "port": 993,
            "username": "crm@firma.de",
            "secret": "s3cret",
            "encryption": "ssl",
        }
        data.update(overrides)
        return MailboxCredentials(**data)

    return _make


@pytest.fixture
def mailbox() -> FakeMailboxServer:
    return FakeMailboxServer()


@pytest.fixture
def cursors() -> InMemoryCursorStore:
    return InMemoryCursorStore()


@pytest.fixture
def messages() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def contacts() -> InMemoryContactDirectory:
    return InMemoryContactDirectory()


@pytest.fixture
def raw_message():
    """RawMessage factory; received one hour before NOW unless told otherwise."""

    def _make(position: int, received_at: Optional[datetime] = None, **email_kwargs) -> RawMessage:
        received_at = received_at or NOW - timedelta(hours=1)
        email_kwargs.setdefault("message_id", f"<m{position}@mail.example.com>")
        email_kwargs.setdefault("date", received_at)
        return RawMessage(position=position, raw_source=build_email(**email_kwargs), received_at=received_at)

    return _make


@pytest.fixture
def make_service(mailbox, cursors, messages, contacts, credentials_factory):
    def _make(credentials: Optional[MailboxCredentials] = ..., max_messages_per_run: int = 100) -> MailSyncService:
        creds = credentials_factory() if credentials is ... else credentials
        return MailSyncService(
            credentials=StaticCredentialsProvider(creds),
            client=mailbox,
            cursors=cursors,
            writer=IngestMessageUseCase(messages=messages, contacts=contacts),
            max_messages_per_run=max_messages_per_run,
            clock=lambda: NOW,
        )

    return _make
