import logging
import re
from datetime import UTC, datetime
from typing import Callable

from mailsync.controllers.imap.models import EmailRecord, FetchedMessage
from mailsync.controllers.imap.parser import AddressField, MessageParser
from mailsync.exceptions import NormalizationError
from mailsync.models.email import SUBJECT_MAX_LENGTH

NO_SUBJECT = "[No Subject]"
UNKNOWN_SENDER = "Unknown"
SEEN_FLAG = "\\Seen"
FLAGGED_FLAG = "\\Flagged"

DISPLAY_TEXT_RE = re.compile(r'"?([^"<]*)"?\s*<([^>]+)>')

# (name, address) or None when the strategy does not apply.
AddressStrategy = Callable[[AddressField], tuple[str, str] | None]


def from_display_text(field: AddressField) -> tuple[str, str] | None:
    match = DISPLAY_TEXT_RE.search(field.text)
    if not match:
        return None
    return match.group(1).strip(), match.group(2).strip()


def from_first_structured(field: AddressField) -> tuple[str, str] | None:
    if not field.addresses:
        return None
    name, address = field.addresses[0]
    return name.strip(), address.strip()


def from_raw_text(field: AddressField) -> tuple[str, str] | None:
    text = field.text.split(",")[0].strip()
    if not text:
        return None
    return "", text


def empty(field: AddressField) -> tuple[str, str] | None:
    return "", ""


ADDRESS_STRATEGIES: list[AddressStrategy] = [from_display_text, from_first_structured, from_raw_text, empty]


def extract_address(field: AddressField, strategies: list[AddressStrategy] = ADDRESS_STRATEGIES) -> tuple[str, str]:
    """Run the strategies in order and return the first match."""
    for strategy in strategies:
        result = strategy(field)
        if result is not None:
            return result
    return "", ""


def provider_message_id(account_id: int, uid: int, folder: str) -> str:
    return f"{account_id}_{uid}_{folder}"


class MessageNormalizer:
    def __init__(self, parser: MessageParser) -> None:
        self._logger = logging.getLogger(__name__)
        self._parser = parser

    def normalize(self, account_id: int, folder: str, message: FetchedMessage) -> EmailRecord:
        """Build the canonical record for a fetched message. Raises only ``NormalizationError``."""
        try:
            parsed = self._parser.parse(message.raw)
            sender_name, sender_email = extract_address(parsed.sender)
            _, recipient_email = extract_address(parsed.recipient)
            subject = (parsed.subject or "").strip() or NO_SUBJECT
            flags = {flag.lower() for flag in message.flags}

            return EmailRecord(
                account_id=account_id,
                provider_message_id=provider_message_id(account_id, message.uid, folder),
                uid=message.uid,
                folder=folder,
                sender_name=sender_name or UNKNOWN_SENDER,
                sender_email=sender_email,
                recipient_email=recipient_email,
                subject=subject[:SUBJECT_MAX_LENGTH],
                body_text=parsed.text_body,
                body_html=parsed.html_body,
                received_at=parsed.date or datetime.now(UTC),
                is_read=SEEN_FLAG.lower() in flags,
                is_starred=FLAGGED_FLAG.lower() in flags,
                attachments=parsed.attachments,
            )
        except NormalizationError:
            raise
        except Exception as e:
            raise NormalizationError(
                f"Could not normalize UID {message.uid} in {folder}: {e}", account_id=account_id, folder=folder
            ) from e
