"""Unit tests for message normalization

Tests cover:
- Canonical external id (Message-ID, content hash fallback)
- Subject, body, address and preview extraction
- Receive time fallbacks
- Attachment capture, including unreadable content
"""

import base64
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage

import pytest

from inboxsync.application.errors import MessageParseError
from inboxsync.application.ports.mailbox_client import RawMessage
from inboxsync.domain.entities.attachment import Attachment
from inboxsync.infrastructure.email.mapper import (
    DEFAULT_SUBJECT,
    EMPTY_BODY,
    external_id_for,
    raw_to_ingested_message,
)
from inboxsync.infrastructure.email.rfc822 import build_preview, extract_attachments

from conftest import NOW, build_email


def _raw(source: bytes, position: int = 1, received_at=None) -> RawMessage:
    return RawMessage(position=position, raw_source=source, received_at=received_at)


class TestExternalId:
    """Dedup key derivation"""

    def test_message_id_used_when_present(self):
        msg = raw_to_ingested_message(_raw(build_email(message_id="<abc@mail.example.com>")), mailbox="INBOX")

        assert msg.external_id == "<abc@mail.example.com>"

    def test_content_hash_fallback_is_stable(self):
        """Same bytes at different positions map to the same id"""
        source = build_email(message_id=None)

        first = raw_to_ingested_message(_raw(source, position=1), mailbox="INBOX", now=NOW)
        second = raw_to_ingested_message(_raw(source, position=99), mailbox="INBOX", now=NOW)

        assert first.external_id.startswith("sha256:")
        assert first.external_id == second.external_id

    def test_blank_message_id_falls_back(self):
        assert external_id_for("   ", b"x").startswith("sha256:")


class TestFieldExtraction:
    """Subject, body, addresses, preview"""

    def test_plain_mail(self):
        msg = raw_to_ingested_message(
            _raw(build_email(message_id="<1@x>", date=NOW)), mailbox="INBOX", is_spam=False
        )

        assert msg.subject == "Angebot Dachsanierung"
        assert msg.from_address == "alice@example.com"
        assert msg.to_address == "crm@firma.de"
        assert "bitte um ein Angebot" in msg.body
        assert msg.preview == "Hallo, bitte um ein Angebot. Gruss Alice"
        assert msg.received_at == NOW
        assert msg.sent_at == msg.received_at
        assert msg.mailbox == "INBOX"
        assert msg.contact_id is None

    def test_missing_subject_gets_placeholder(self):
        msg = raw_to_ingested_message(_raw(build_email(subject=None)), mailbox="INBOX", now=NOW)

        assert msg.subject == DEFAULT_SUBJECT

    def test_html_only_body_is_stripped(self):
        html = "<html><body><p>Sehr geehrte Damen und Herren,</p><p>wir <b>kuendigen</b>.</p></body></html>"
        msg = raw_to_ingested_message(_raw(build_email(body=None, html=html)), mailbox="INBOX", now=NOW)

        assert "<" not in msg.body
        assert "Sehr geehrte Damen und Herren," in msg.body
        assert "kuendigen" in msg.body

    def test_plain_text_preferred_over_html(self):
        msg = raw_to_ingested_message(
            _raw(build_email(body="Nur Text", html="<p>HTML Variante</p>")), mailbox="INBOX", now=NOW
        )

        assert msg.body == "Nur Text"

    def test_empty_body_placeholder(self):
        msg = raw_to_ingested_message(_raw(build_email(body="")), mailbox="INBOX", now=NOW)

        assert msg.body == EMPTY_BODY
        assert msg.preview == ""

    def test_multiple_recipients_takes_first(self):
        msg = raw_to_ingested_message(
            _raw(build_email(to="Sales <SALES@firma.de>, support@firma.de")), mailbox="INBOX", now=NOW
        )

        assert msg.to_address == "sales@firma.de"

    def test_preview_limited_and_collapsed(self):
        preview = build_preview("Zeile eins\n\n\tZeile   zwei " + "x" * 500)

        assert preview.startswith("Zeile eins Zeile zwei x")
        assert len(preview) == 200

    def test_spam_flag_carried(self):
        msg = raw_to_ingested_message(_raw(build_email()), mailbox="Junk", is_spam=True, now=NOW)

        assert msg.is_spam is True
        assert msg.mailbox == "Junk"


class TestReceivedAt:
    """Receive time fallbacks"""

    def test_internal_date_used_without_date_header(self):
        internal = NOW - timedelta(days=1)
        msg = raw_to_ingested_message(_raw(build_email(date=None), received_at=internal), mailbox="INBOX", now=NOW)

        assert msg.received_at == internal

    def test_now_used_without_any_date(self):
        msg = raw_to_ingested_message(_raw(build_email(date=None)), mailbox="INBOX", now=NOW)

        assert msg.received_at == NOW

    def test_unparseable_date_header_falls_back(self):
        source = b"From: a@b.de\r\nDate: gestern irgendwann\r\nSubject: x\r\n\r\nbody\r\n"
        msg = raw_to_ingested_message(_raw(source), mailbox="INBOX", now=NOW)

        assert msg.received_at == NOW

    def test_received_at_is_utc(self):
        local = datetime(2026, 10, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        msg = raw_to_ingested_message(_raw(build_email(date=local)), mailbox="INBOX", now=NOW)

        assert msg.received_at == datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        assert msg.received_at.utcoffset() == timedelta(0)


class TestAttachments:
    """Attachment materialization"""

    def test_attachment_captured_with_payload(self):
        data = b"%PDF-1.4 fake pdf bytes"
        msg = raw_to_ingested_message(
            _raw(build_email(attachments=(("angebot.pdf", data, "application/pdf"),))), mailbox="INBOX", now=NOW
        )

        assert msg.attachments == [
            Attachment(
                name="angebot.pdf",
                mime_type="application/pdf",
                size_bytes=len(data),
                payload=base64.b64encode(data).decode("ascii"),
            )
        ]
        # attachment content never leaks into the body
        assert "PDF" not in msg.body

    def test_attachment_without_filename_gets_default_name(self):
        source = (
            b"From: a@b.de\r\n"
            b"Subject: Scan\r\n"
            b"MIME-Version: 1.0\r\n"
            b'Content-Type: multipart/mixed; boundary="XX"\r\n'
            b"\r\n"
            b"--XX\r\n"
            b"Content-Type: text/plain\r\n"
            b"\r\n"
            b"siehe Anhang\r\n"
            b"--XX\r\n"
            b"Content-Type: application/octet-stream\r\n"
            b"Content-Disposition: attachment; size=42\r\n"
            b"Content-Transfer-Encoding: base64\r\n"
            b"\r\n"
            b"aGFsbG8=\r\n"
            b"--XX--\r\n"
        )
        msg = raw_to_ingested_message(_raw(source), mailbox="INBOX", now=NOW)

        assert msg.body == "siehe Anhang"
        assert len(msg.attachments) == 1
        att = msg.attachments[0]
        assert att.name == "attachment"
        assert att.mime_type == "application/octet-stream"
        assert att.size_bytes == 42
        assert base64.b64decode(att.payload) == b"hallo"

    def test_unreadable_attachment_keeps_metadata(self):
        """Content that cannot be decoded yields a record without payload"""

        class BrokenPart(EmailMessage):
            def get_payload(self, i=None, decode=False):
                if decode:
                    raise ValueError("corrupt transfer encoding")
                return super().get_payload(i, decode)

        part = BrokenPart()
        part.set_content(b"data", maintype="application", subtype="pdf", filename="rechnung.pdf")

        assert extract_attachments(part) == [
            Attachment(name="rechnung.pdf", mime_type="application/pdf", size_bytes=None, payload=None)
        ]


class TestParseFailures:
    def test_missing_source_raises(self):
        with pytest.raises(MessageParseError) as exc:
            raw_to_ingested_message(RawMessage(position=7, raw_source=None), mailbox="INBOX")

        assert exc.value.position == 7
