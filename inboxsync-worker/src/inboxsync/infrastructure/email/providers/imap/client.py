from __future__ import annotations
import imaplib
import re
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from loguru import logger

from inboxsync.application.errors import ConnectionFailure
from inboxsync.application.ports.mailbox_client import FolderInfo, MailboxClient, MailboxSession, RawMessage
from inboxsync.domain.models import MailboxCredentials
from inboxsync.infrastructure.email.providers.imap.auth import ImapAuthenticator

FETCH_ITEMS = "(UID FLAGS INTERNALDATE RFC822.SIZE BODY.PEEK[])"

_LIST_LINE = re.compile(r'^\((?P<flags>[^)]*)\) (?P<delim>"[^"]*"|NIL) (?P<name>.+)$')
_SIZE = re.compile(rb"RFC822\.SIZE (\d+)")
_FLAGS = re.compile(rb"FLAGS \(([^)]*)\)")

# Errors that mean the session is unusable
_SESSION_ERRORS = (imaplib.IMAP4.error, OSError)


def _quote(folder: str) -> str:
    if folder.startswith('"'):
        return folder
    return '"' + folder.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_list_line(line: bytes | str) -> Optional[FolderInfo]:
    """Parse one LIST response line: ``(\\HasNoChildren \\Junk) "/" "Spam"``."""
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    m = _LIST_LINE.match(text.strip())
    if not m:
        return None
    name = m.group("name").strip()
    if name.startswith('"') and name.endswith('"'):
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    flags = tuple(f for f in m.group("flags").split() if f)
    return FolderInfo(path=name, flags=flags)


def _internal_date(meta: bytes) -> Optional[datetime]:
    tt = imaplib.Internaldate2tuple(meta)
    if tt is None:
        return None
    return datetime.fromtimestamp(time.mktime(tt), tz=timezone.utc)


class ImapSession(MailboxSession):
    """One authenticated IMAP connection. Folders are opened read-only."""

    def __init__(self, conn: imaplib.IMAP4, account: str) -> None:
        self._conn: Optional[imaplib.IMAP4] = conn
        self.account = account
        self.folder: Optional[str] = None

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ConnectionFailure("IMAP session is closed")
        return self._conn

    def __enter__(self) -> "ImapSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except _SESSION_ERRORS as e:
            logger.debug(f"IMAP logout for {self.account} failed: {e}")
        self._conn = None

    def list_folders(self) -> list[FolderInfo]:
        try:
            typ, data = self.conn.list()
        except _SESSION_ERRORS as e:
            raise ConnectionFailure(f"LIST failed: {e}") from e
        if typ != "OK" or not data:
            return []

        folders = []
        for line in data:
            if not line:
                continue
            if isinstance(line, tuple):
                # literal-encoded name: (b'(\\Flags) "/" {5}', b'Junk')
                line = line[0] + b'"' + line[1] + b'"'
                line = re.sub(rb"\{\d+\}", b"", line)
            info = parse_list_line(line)
            if info:
                folders.append(info)
        return folders

    @contextmanager
    def select(self, folder: str) -> Iterator[None]:
        """Select a folder read-only for the duration of the block."""
        try:
            typ, data = self.conn.select(_quote(folder), readonly=True)
        except _SESSION_ERRORS as e:
            raise ConnectionFailure(f"Failed to select folder {folder}: {e}") from e
        if typ != "OK":
            raise ConnectionFailure(f"Failed to select folder {folder}: {data!r}")

        self.folder = folder
        try:
            yield
        finally:
            self.folder = None
            if self._conn is not None:
                try:
                    self._conn.close()
                except _SESSION_ERRORS as e:
                    logger.debug(f"IMAP CLOSE on {folder} failed: {e}")

    def _search_uids(self, start_position: int) -> list[int]:
        try:
            typ, uids_data = self.conn.uid("SEARCH", None, f"UID {start_position}:*")
        except _SESSION_ERRORS as e:
            raise ConnectionFailure(f"UID SEARCH failed: {e}") from e
        if typ != "OK":
            raise ConnectionFailure(f"UID SEARCH failed: {uids_data!r}")

        uids: list[int] = []
        if uids_data and uids_data[0]:
            uids = [int(x) for x in uids_data[0].split()]
        # "N:*" matches the highest UID even when it is below N
        return sorted(uid for uid in uids if uid >= start_position)

    def fetch(self, start_position: int) -> Iterator[RawMessage]:
        """Yield messages with UID >= start_position, one FETCH per message."""
        if self.folder is None:
            raise ConnectionFailure("fetch() called without a selected folder")
        start_position = max(start_position, 1)

        uids = self._search_uids(start_position)
        logger.debug(f"{len(uids)} messages at or above UID {start_position} in {self.folder}")

        for uid in uids:
            try:
                typ, msg_data = self.conn.uid("FETCH", str(uid), FETCH_ITEMS)
            except _SESSION_ERRORS as e:
                raise ConnectionFailure(f"UID FETCH {uid} failed: {e}") from e

            yield self._to_raw(uid, typ, msg_data)

    def _to_raw(self, uid: int, typ: str, msg_data: list) -> RawMessage:
        parts = [p for p in (msg_data or []) if isinstance(p, tuple)]
        if typ != "OK" or not parts:
            logger.warning(f"UID {uid} in {self.folder} returned no data")
            return RawMessage(position=uid, raw_source=None)

        meta, source = parts[0][0], parts[0][1]
        envelope: dict[str, str] = {}
        size = _SIZE.search(meta)
        if size:
            envelope["size"] = size.group(1).decode()
        flags = _FLAGS.search(meta)
        if flags:
            envelope["flags"] = flags.group(1).decode(errors="replace")

        return RawMessage(
            position=uid,
            raw_source=source if isinstance(source, bytes) else None,
            received_at=_internal_date(meta),
            envelope=envelope,
        )


class ImapMailboxClient(MailboxClient):
    def __init__(self, timeout: float | None = 30.0) -> None:
        self.authenticator = ImapAuthenticator(timeout=timeout)

    def connect(self, credentials: MailboxCredentials) -> ImapSession:
        conn = self.authenticator.login(credentials)
        return ImapSession(conn, account=credentials.username)

    def verify(self, credentials: MailboxCredentials) -> None:
        """Quick auth check; raises ConnectionFailure on bad credentials."""
        with self.connect(credentials):
            logger.info(f"IMAP credentials verified for {credentials.username}@{credentials.host}")
