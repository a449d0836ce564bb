"""inboxsync - incremental IMAP mailbox sync for the CRM unified inbox."""

__version__ = "0.1.0"
