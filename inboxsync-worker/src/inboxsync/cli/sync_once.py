"""One-shot mailbox sync, or a credential check with --verify."""

from __future__ import annotations

import argparse

from loguru import logger

from inboxsync.application.errors import ConnectionFailure
from inboxsync.cli.worker import build_sync_service, configure_logging
from inboxsync.infrastructure.email.providers.imap.client import ImapMailboxClient
from inboxsync.infrastructure.settings import get_settings


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync the configured mailbox once")
    parser.add_argument("--verify", action="store_true", help="Only check that the IMAP login works")
    parser.add_argument("--max-messages", type=int, default=None, help="Override the per-run message cap")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)

    creds = settings.mailbox_credentials()
    if creds is None:
        print("No mailbox configured. Set IMAP_HOST, IMAP_USERNAME and IMAP_PASSWORD.")
        return 1

    if args.verify:
        try:
            ImapMailboxClient(timeout=settings.imap_timeout_seconds).verify(creds)
        except ConnectionFailure as e:
            print(f"IMAP login failed: {e}")
            return 1
        print(f"IMAP login ok for {creds.username}@{creds.host}")
        return 0

    service = build_sync_service(settings)
    if args.max_messages:
        service.max_messages_per_run = args.max_messages

    print(f"Syncing {creds.mailbox_id()} (cap {service.max_messages_per_run})")
    report = service.run()
    if report is None:
        logger.warning("Sync did not run")
        return 1

    for result in report.mailboxes:
        print(
            f"{result.folder}: ingested {result.ingested}, duplicates {result.duplicates}, "
            f"cursor {result.previous_position} -> {result.committed_position}"
        )
    return 0 if report.ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
