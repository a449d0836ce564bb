from __future__ import annotations
import base64
from email.errors import HeaderParseError
from email.message import Message
from email.utils import getaddresses
from typing import Optional

from bs4 import BeautifulSoup
from loguru import logger

from inboxsync.domain.entities.attachment import Attachment

PREVIEW_LENGTH = 200
DEFAULT_ATTACHMENT_NAME = "attachment"


def _part_text(part: Message) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeError, AttributeError):
        # unknown charset or legacy Message object; decode by hand
        raw = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        try:
            return raw.decode(charset, errors="replace")
        except LookupError:
            return raw.decode("utf-8", errors="replace")


def html_to_text(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


def _is_attachment(part: Message) -> bool:
    if part.is_multipart():
        return False
    disp = (part.get("Content-Disposition") or "").lower()
    return bool(part.get_filename()) or "attachment" in disp


def as_text(msg: Message) -> str:
    # Prefer text/plain; fallback to stripped HTML
    plain: Optional[str] = None
    html: Optional[str] = None
    for part in msg.walk():
        if part.is_multipart() or _is_attachment(part):
            continue
        ctype = part.get_content_type()
        if ctype == "text/plain" and plain is None:
            plain = _part_text(part)
        elif ctype == "text/html" and html is None:
            html = _part_text(part)

    if plain and plain.strip():
        return plain.strip()
    if html:
        return html_to_text(html)
    return ""


def _is_mailbox(addr: str) -> bool:
    local, at, domain = addr.rpartition("@")
    return bool(at and local and domain) and " " not in addr


def first_address(msg: Message, header: str) -> Optional[str]:
    """First mailbox of an address header, lower-cased; None when malformed."""
    # raw values: the structured header parser raises on some broken input
    name = header.lower()
    values = [str(v) for k, v in msg.raw_items() if k.lower() == name]
    if not values:
        return None
    try:
        pairs = getaddresses(values)
    except (HeaderParseError, IndexError, ValueError) as e:
        logger.debug(f"Unparseable {header} header {values!r}: {e}")
        return None
    for _name, addr in pairs:
        addr = addr.strip().lower()
        if _is_mailbox(addr):
            return addr
    return None


def build_preview(text: str) -> str:
    if not text:
        return ""
    return " ".join(text.split())[:PREVIEW_LENGTH]


def _reported_size(part: Message) -> Optional[int]:
    size = part.get_param("size", header="content-disposition")
    if isinstance(size, str) and size.strip().isdigit():
        return int(size.strip())
    return None


def extract_attachments(msg: Message) -> list[Attachment]:
    out: list[Attachment] = []
    for part in msg.walk():
        if not _is_attachment(part):
            continue

        name = part.get_filename() or DEFAULT_ATTACHMENT_NAME
        mime_type = part.get_content_type()
        size = _reported_size(part)

        try:
            content = part.get_payload(decode=True)
        except Exception as e:
            logger.warning(f"Unreadable attachment {name}: {e}")
            content = None

        if content is None:
            out.append(Attachment(name=name, mime_type=mime_type, size_bytes=size, payload=None))
            continue

        out.append(
            Attachment(
                name=name,
                mime_type=mime_type,
                size_bytes=size if size is not None else len(content),
                payload=base64.b64encode(content).decode("ascii"),
            )
        )
    return out
