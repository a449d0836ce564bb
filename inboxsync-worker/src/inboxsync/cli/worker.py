"""Mail sync worker - runs the mailbox sync on a fixed interval."""

from __future__ import annotations

import signal
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from inboxsync.application.use_cases.ingest_message import IngestMessageUseCase
from inboxsync.application.use_cases.sync_mailbox import MailSyncService
from inboxsync.application.ports.credentials import CredentialsProvider
from inboxsync.domain.models import SyncReport
from inboxsync.infrastructure.email.providers.imap.client import ImapMailboxClient
from inboxsync.infrastructure.settings import Settings, SettingsCredentialsProvider, get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)


def build_sync_service(
    settings: Settings,
    credentials: CredentialsProvider | None = None,
) -> MailSyncService:
    """Wire the sync service against the configured store backend."""
    if settings.store_backend == "postgres":
        from inboxsync.infrastructure.postgres_client import PostgresClientWrapper
        from inboxsync.infrastructure.stores.postgres_stores import (
            PostgresContactDirectory,
            PostgresCursorStore,
            PostgresMessageStore,
        )

        pg = PostgresClientWrapper(settings)
        pg.setup_schema()
        cursors, messages, contacts = PostgresCursorStore(pg), PostgresMessageStore(pg), PostgresContactDirectory(pg)
    else:
        from inboxsync.infrastructure.sqlite import SQLiteClient
        from inboxsync.infrastructure.stores import (
            SQLiteContactDirectory,
            SQLiteCursorStore,
            SQLiteMessageStore,
        )

        db = SQLiteClient(settings.sqlite_path)
        cursors, messages, contacts = SQLiteCursorStore(db), SQLiteMessageStore(db), SQLiteContactDirectory(db)

    return MailSyncService(
        credentials=credentials or SettingsCredentialsProvider(settings),
        client=ImapMailboxClient(timeout=settings.imap_timeout_seconds),
        cursors=cursors,
        writer=IngestMessageUseCase(messages=messages, contacts=contacts),
        max_messages_per_run=settings.mail_sync_max_messages,
    )


@dataclass
class WorkerStats:
    """Track worker statistics."""
    ticks: int = 0
    runs_completed: int = 0
    runs_skipped: int = 0
    total_ingested: int = 0
    total_issues: int = 0
    total_errors: int = 0
    last_tick: datetime | None = None
    by_mailbox: dict[str, int] = field(default_factory=dict)

    def record(self, report: SyncReport | None) -> None:
        self.ticks += 1
        self.last_tick = datetime.now()
        if report is None:
            self.runs_skipped += 1
            return
        self.runs_completed += 1
        self.total_ingested += report.ingested
        self.total_issues += len(report.issues)
        for result in report.mailboxes:
            self.by_mailbox[result.mailbox_id] = self.by_mailbox.get(result.mailbox_id, 0) + result.ingested


class MailSyncWorker:
    """
    Fixed-interval scheduler for a MailSyncService.

    Each tick calls service.run(), which drops the tick if a run is still
    active and never raises.
    """

    def __init__(self, service: MailSyncService, poll_interval_minutes: int = 5):
        self.service = service
        self.poll_interval = poll_interval_minutes * 60  # Convert to seconds
        self.running = False
        self.stats = WorkerStats()

    def tick(self) -> SyncReport | None:
        try:
            report = self.service.run()
        except Exception as e:
            self.stats.total_errors += 1
            logger.error(f"Sync tick failed: {e}")
            report = None
        self.stats.record(report)
        return report

    def _log_stats(self) -> None:
        """Log current worker statistics."""
        logger.info(
            f"Worker stats: "
            f"ticks={self.stats.ticks}, "
            f"runs={self.stats.runs_completed}, "
            f"skipped={self.stats.runs_skipped}, "
            f"ingested={self.stats.total_ingested}, "
            f"issues={self.stats.total_issues}, "
            f"errors={self.stats.total_errors}, "
            f"by_mailbox={self.stats.by_mailbox}"
        )

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def _sleep(self) -> None:
        # Sleep in small increments to respond to signals quickly
        sleep_remaining = self.poll_interval
        while sleep_remaining > 0 and self.running:
            sleep_time = min(sleep_remaining, 10)
            time.sleep(sleep_time)
            sleep_remaining -= sleep_time

    def run(self) -> int:
        """Run the worker loop."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(f"Mail sync worker starting, interval {self.poll_interval // 60} minutes")
        self.running = True

        # Initial run
        self.tick()

        while self.running:
            logger.debug(f"Sleeping for {self.poll_interval} seconds...")
            self._sleep()
            if self.running:
                self.tick()
                self._log_stats()

        logger.info("Worker shutdown complete")
        self._log_stats()
        return 0


def main() -> int:
    """Entry point for the mail sync worker."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} mail sync worker v{settings.app_version}")
    logger.info("=" * 60)

    if settings.mailbox_credentials() is None:
        logger.warning("No mailbox configured (IMAP_HOST/IMAP_USERNAME/IMAP_PASSWORD) - runs will be no-ops")

    try:
        service = build_sync_service(settings)
    except Exception as e:
        logger.error(f"Failed to initialize infrastructure: {e}")
        return 1

    worker = MailSyncWorker(service, poll_interval_minutes=settings.mail_sync_interval_minutes)
    return worker.run()


if __name__ == "__main__":
    raise SystemExit(main())
