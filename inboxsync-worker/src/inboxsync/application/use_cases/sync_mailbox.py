"""Incremental mailbox sync: pull new mail past the stored cursor into the message store."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from inboxsync.application.errors import ConnectionFailure, MessageParseError, PersistenceError
from inboxsync.application.ports.credentials import CredentialsProvider
from inboxsync.application.ports.cursor_store import CursorStore
from inboxsync.application.ports.mailbox_client import MailboxClient, MailboxSession, RawMessage
from inboxsync.application.use_cases.ingest_message import IngestMessageUseCase, IngestOutcome
from inboxsync.domain.models import (
    MailboxCredentials,
    MailboxSyncResult,
    SyncIssue,
    SyncIssueKind,
    SyncReport,
)
from inboxsync.infrastructure.email.mapper import raw_to_ingested_message
from inboxsync.infrastructure.email.providers.imap.folders import SyncTarget, resolve_sync_targets

DEFAULT_MAX_MESSAGES_PER_RUN = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CursorProgress:
    """Tracks how far the cursor may move for one folder.

    Positions arrive in ascending order. The committable position is the last
    handled one, stalled just before the first message whose write failed.
    """

    def __init__(self, start: int) -> None:
        self.start = start
        self.last_handled = start
        self.first_failed: Optional[int] = None

    def handled(self, position: int) -> None:
        self.last_handled = max(self.last_handled, position)

    def failed(self, position: int) -> None:
        if self.first_failed is None or position < self.first_failed:
            self.first_failed = position

    @property
    def committable(self) -> int:
        if self.first_failed is not None:
            return max(self.start, min(self.last_handled, self.first_failed - 1))
        return self.last_handled


class MailSyncService:
    """Single-flight mailbox sync orchestrator.

    Flow per run:
    1. Drop the tick if a run is already active on this instance
    2. Load credentials; none configured means sync is disabled
    3. Open a session, resolve the primary (and optional spam) folder
    4. Per folder: fetch past the cursor, normalize, apply the age cutoff,
       ingest, stop at the per-run cap
    5. Commit each folder's cursor once, then release the session

    run() never raises. Stage failures land in the returned SyncReport.
    """

    def __init__(
        self,
        credentials: CredentialsProvider,
        client: MailboxClient,
        cursors: CursorStore,
        writer: IngestMessageUseCase,
        max_messages_per_run: int = DEFAULT_MAX_MESSAGES_PER_RUN,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.credentials = credentials
        self.client = client
        self.cursors = cursors
        self.writer = writer
        self.max_messages_per_run = max_messages_per_run
        self.clock = clock
        self._guard = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def run(self) -> Optional[SyncReport]:
        """Run one sync pass. Returns None when skipped or disabled."""
        if not self._guard.acquire(blocking=False):
            logger.debug("Mail sync skipped - another run is still active")
            return None

        try:
            return self._run()
        except Exception as e:
            logger.exception(f"Mail sync failed unexpectedly: {e}")
            return None
        finally:
            self._guard.release()

    def _run(self) -> Optional[SyncReport]:
        creds = self.credentials.get_credentials()
        if creds is None:
            logger.debug("Mail sync disabled - no mailbox credentials configured")
            return None

        report = SyncReport(started_at=self.clock())
        try:
            with self.client.connect(creds) as session:
                for target in self._targets(session, creds):
                    budget = self.max_messages_per_run - report.charged
                    if budget <= 0:
                        break
                    result, aborted = self._sync_folder(session, creds, target, budget, report)
                    report.mailboxes.append(result)
                    if aborted:
                        break
        except ConnectionFailure as e:
            report.issues.append(
                SyncIssue(kind=SyncIssueKind.CONNECTION, mailbox_id=creds.mailbox_id(), message=str(e))
            )

        report.finished_at = self.clock()
        self._log_report(creds, report)
        return report

    def _targets(self, session: MailboxSession, creds: MailboxCredentials) -> list[SyncTarget]:
        try:
            folders = session.list_folders()
        except ConnectionFailure as e:
            logger.debug(f"Folder list unavailable, using configured names: {e}")
            folders = []
        return resolve_sync_targets(creds, folders)

    def _sync_folder(
        self,
        session: MailboxSession,
        creds: MailboxCredentials,
        target: SyncTarget,
        budget: int,
        report: SyncReport,
    ) -> tuple[MailboxSyncResult, bool]:
        """Sync one folder. Returns its result and whether the connection was lost."""
        mailbox_id = creds.mailbox_id(target.folder)
        result = MailboxSyncResult(mailbox_id=mailbox_id, folder=target.folder, is_spam=target.is_spam)
        try:
            cursor = self.cursors.get(mailbox_id)
        except PersistenceError as e:
            report.issues.append(
                SyncIssue(kind=SyncIssueKind.PERSISTENCE, mailbox_id=mailbox_id, message=str(e))
            )
            return result, True

        previous = cursor.last_position if cursor else 0
        result.previous_position = result.committed_position = previous
        progress = _CursorProgress(previous)
        cutoff = creds.cutoff(self.clock())
        aborted = False

        logger.debug(f"Syncing {mailbox_id} from UID {previous + 1} (budget {budget})")
        try:
            with session.select(target.folder):
                for raw in session.fetch(previous + 1):
                    self._handle(raw, target, cutoff, result, progress, report)
                    if result.charged >= budget:
                        break
        except ConnectionFailure as e:
            aborted = True
            report.issues.append(
                SyncIssue(kind=SyncIssueKind.CONNECTION, mailbox_id=mailbox_id, message=str(e))
            )

        result.committed_position = self._commit(mailbox_id, previous, progress.committable, report)
        return result, aborted

    def _handle(
        self,
        raw: RawMessage,
        target: SyncTarget,
        cutoff: Optional[datetime],
        result: MailboxSyncResult,
        progress: _CursorProgress,
        report: SyncReport,
    ) -> None:
        result.handled += 1

        if cutoff and raw.received_at and raw.received_at < cutoff:
            result.skipped_cutoff += 1
            progress.handled(raw.position)
            return

        try:
            message = raw_to_ingested_message(raw, mailbox=target.folder, is_spam=target.is_spam, now=self.clock())
        except MessageParseError as e:
            logger.debug(f"Skipping unparseable message: {e}")
            result.skipped_parse += 1
            progress.handled(raw.position)
            report.issues.append(
                SyncIssue(kind=SyncIssueKind.PARSE, mailbox_id=result.mailbox_id, message=str(e), position=raw.position)
            )
            return

        if cutoff and raw.received_at is None and message.received_at < cutoff:
            result.skipped_cutoff += 1
            progress.handled(raw.position)
            return

        try:
            outcome = self.writer.ingest(message)
        except PersistenceError as e:
            result.failed += 1
            progress.failed(raw.position)
            report.issues.append(
                SyncIssue(
                    kind=SyncIssueKind.PERSISTENCE,
                    mailbox_id=result.mailbox_id,
                    message=str(e),
                    position=raw.position,
                )
            )
            return

        progress.handled(raw.position)
        if outcome is IngestOutcome.CREATED:
            result.ingested += 1
        else:
            result.duplicates += 1

    def _commit(self, mailbox_id: str, previous: int, position: int, report: SyncReport) -> int:
        if position <= previous:
            return previous
        try:
            self.cursors.set(mailbox_id, position)
        except PersistenceError as e:
            report.issues.append(
                SyncIssue(kind=SyncIssueKind.PERSISTENCE, mailbox_id=mailbox_id, message=str(e))
            )
            return previous
        logger.debug(f"Cursor for {mailbox_id} advanced {previous} -> {position}")
        return position

    def _log_report(self, creds: MailboxCredentials, report: SyncReport) -> None:
        for result in report.mailboxes:
            logger.info(
                f"Mail sync {result.mailbox_id}: handled={result.handled}, ingested={result.ingested}, "
                f"duplicates={result.duplicates}, cutoff={result.skipped_cutoff}, "
                f"unparseable={result.skipped_parse}, failed={result.failed}, "
                f"cursor={result.previous_position}->{result.committed_position}"
            )

        if report.ok:
            return

        summary = ", ".join(
            f"{kind.value}={len(report.issues_of(kind))}"
            for kind in SyncIssueKind
            if report.issues_of(kind)
        )
        details = "; ".join(
            f"{issue.kind.value}@{issue.position or '-'}: {issue.message}" for issue in report.issues[:10]
        )
        if report.issues_of(SyncIssueKind.PERSISTENCE) or report.issues_of(SyncIssueKind.CONNECTION):
            logger.error(f"Mail sync {creds.mailbox_id()} had issues ({summary}): {details}")
        else:
            logger.warning(f"Mail sync {creds.mailbox_id()} had issues ({summary}): {details}")
