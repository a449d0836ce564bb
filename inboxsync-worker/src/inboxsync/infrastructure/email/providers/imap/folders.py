"""Resolve configured folder names against the server's folder list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from inboxsync.application.ports.mailbox_client import FolderInfo
from inboxsync.domain.models import MailboxCredentials

# Common provider spellings, tried after the configured spam folder
SPAM_FOLDER_CANDIDATES = ("[Gmail]/Spam", "INBOX/Spam", "INBOX.Spam", "Junk", "Junk E-mail", "Spam")
JUNK_FLAGS = ("\\junk",)


@dataclass(frozen=True)
class SyncTarget:
    folder: str
    is_spam: bool = False


def _matches(path: str, candidate: str) -> bool:
    path, candidate = path.lower(), candidate.lower()
    return path == candidate or path.endswith(f"/{candidate}") or path.endswith(f".{candidate}")


def find_folder(candidates: Iterable[str], folders: list[FolderInfo]) -> Optional[str]:
    """First server path matching a candidate, exactly or as a hierarchy leaf."""
    for candidate in candidates:
        exact = [f.path for f in folders if f.path.lower() == candidate.lower()]
        if exact:
            return exact[0]
        for folder in folders:
            if _matches(folder.path, candidate):
                return folder.path
    return None


def find_junk_folder(folders: list[FolderInfo]) -> Optional[str]:
    for folder in folders:
        if any(flag.lower() in JUNK_FLAGS for flag in folder.flags):
            return folder.path
    return None


def resolve_sync_targets(credentials: MailboxCredentials, folders: list[FolderInfo]) -> list[SyncTarget]:
    """Folders to sync this run: the primary mailbox, then a spam folder if one exists.

    A ``\\Junk`` folder wins. Otherwise the configured spam folder ("Spam"
    when the primary is INBOX) and common provider spellings are tried.
    With an empty folder list (listing unsupported or failed) only configured
    names are used, as-is.
    """
    primary = find_folder([credentials.mailbox], folders) or credentials.mailbox
    targets = [SyncTarget(folder=primary)]

    if not folders:
        spam = credentials.spam_mailbox
    else:
        configured = credentials.spam_mailbox or ("Spam" if primary.lower() == "inbox" else None)
        candidates = [configured] if configured else []
        junk = find_junk_folder(folders)
        if junk and junk.lower() == primary.lower():
            junk = None
        spam = junk or find_folder([*candidates, *SPAM_FOLDER_CANDIDATES], folders)

    if spam and spam.lower() != primary.lower():
        targets.append(SyncTarget(folder=spam, is_spam=True))
    return targets
