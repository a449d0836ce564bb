from __future__ import annotations
import imaplib
import ssl

from loguru import logger

from inboxsync.application.errors import ConnectionFailure
from inboxsync.domain.models import Encryption, MailboxCredentials


class ImapAuthenticator:
    """
    Responsible ONLY for establishing an authenticated IMAP connection.
    No folder logic, no fetching, no parsing.
    """

    def __init__(self, timeout: float | None = 30.0) -> None:
        self.timeout = timeout

    def _open(self, creds: MailboxCredentials) -> imaplib.IMAP4:
        if creds.encryption is Encryption.SSL:
            return imaplib.IMAP4_SSL(
                host=creds.host,
                port=creds.port,
                ssl_context=ssl.create_default_context(),
                timeout=self.timeout,
            )

        conn = imaplib.IMAP4(host=creds.host, port=creds.port, timeout=self.timeout)
        if creds.encryption is Encryption.TLS:
            conn.starttls(ssl_context=ssl.create_default_context())
        return conn

    def login(self, creds: MailboxCredentials) -> imaplib.IMAP4:
        """Returns an authenticated connection; raises ConnectionFailure otherwise."""
        try:
            conn = self._open(creds)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionFailure(f"IMAP connect to {creds.host}:{creds.port} failed: {e}") from e

        try:
            conn.login(creds.username, creds.secret.get_secret_value())
        except (imaplib.IMAP4.error, OSError) as e:
            try:
                conn.shutdown()
            except OSError as close_err:
                logger.debug(f"Socket shutdown after failed login: {close_err}")
            raise ConnectionFailure(f"IMAP login for {creds.username} failed: {e}") from e

        logger.debug(f"IMAP login ok: {creds.username}@{creds.host} ({creds.encryption.value})")
        return conn
