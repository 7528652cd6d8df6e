import email
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.header import decode_header, make_header
from email.message import Message as PythonEmailMessage
from email.utils import getaddresses, parsedate_to_datetime

from mailsync.controllers.imap.models import AttachmentMeta

logger = logging.getLogger(__name__)


@dataclass
class AddressField:
    """An address header as both display text and parsed ``(name, address)`` pairs."""

    text: str = ""
    addresses: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class ParsedMessage:
    sender: AddressField
    recipient: AddressField
    subject: str | None
    date: datetime | None
    text_body: str = ""
    html_body: str = ""
    attachments: list[AttachmentMeta] = field(default_factory=list)


class MessageParser:
    """Turns raw RFC 822 bytes into headers, bodies and attachment metadata. No I/O."""

    def parse(self, raw: bytes) -> ParsedMessage:
        msg = email.message_from_bytes(raw)
        text_body, html_body = self._extract_bodies(msg)
        return ParsedMessage(
            sender=self._address_field(msg.get("From")),
            recipient=self._address_field(msg.get("To")),
            subject=self._decode(msg.get("Subject")) if msg.get("Subject") is not None else None,
            date=self._parse_date(msg.get("Date")),
            text_body=text_body,
            html_body=html_body,
            attachments=self._extract_attachments(msg),
        )

    @staticmethod
    def _decode(value: object) -> str:
        if value is None:
            return ""
        try:
            return str(make_header(decode_header(str(value))))
        except (UnicodeDecodeError, LookupError, ValueError):
            return str(value)

    def _address_field(self, header: object) -> AddressField:
        if header is None:
            return AddressField()
        text = self._decode(header).strip()
        try:
            addresses = [(name, address) for name, address in getaddresses([text]) if address]
        except (TypeError, ValueError):
            logger.exception(f"Failed to parse addresses '{text}'")
            addresses = []
        return AddressField(text=text, addresses=addresses)

    @staticmethod
    def _parse_date(header: object) -> datetime | None:
        if not header:
            return None
        try:
            date = parsedate_to_datetime(str(header))
        except (TypeError, ValueError, IndexError):
            return None
        if date.tzinfo is None:
            date = date.replace(tzinfo=UTC)
        return date

    @staticmethod
    def _decode_payload(part: PythonEmailMessage) -> str:
        payload = part.get_payload(decode=True)
        if not payload:
            return ""
        if not isinstance(payload, bytes):
            return str(payload)
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset)
        except (UnicodeDecodeError, LookupError):
            return payload.decode("utf-8", errors="ignore")

    def _extract_bodies(self, msg: PythonEmailMessage) -> tuple[str, str]:
        text_body = ""
        html_body = ""

        parts = msg.walk() if msg.is_multipart() else [msg]
        for part in parts:
            if part.is_multipart():
                continue
            # Skip attachments
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and not text_body:
                text_body = self._decode_payload(part)
            elif content_type == "text/html" and not html_body:
                html_body = self._decode_payload(part)

        return text_body.strip(), html_body.strip()

    def _extract_attachments(self, msg: PythonEmailMessage) -> list[AttachmentMeta]:
        attachments: list[AttachmentMeta] = []
        if not msg.is_multipart():
            return attachments

        for part in msg.walk():
            if part.is_multipart():
                continue
            disposition = str(part.get("Content-Disposition", ""))
            filename = part.get_filename()
            if "attachment" not in disposition and not ("inline" in disposition and filename):
                continue

            payload = part.get_payload(decode=True)
            content_id = part.get("Content-ID")
            attachments.append(
                AttachmentMeta(
                    filename=self._decode(filename) if filename else "unnamed",
                    content_type=part.get_content_type(),
                    size=len(payload) if isinstance(payload, bytes) else 0,
                    cid=str(content_id).strip("<> ") if content_id else None,
                )
            )
        return attachments
