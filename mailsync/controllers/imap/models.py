from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class FolderStatus(BaseModel):
    name: str
    total: int = 0


class FetchedMessage(BaseModel):
    uid: int
    flags: list[str] = Field(default_factory=list)
    raw: bytes = b""


class AttachmentMeta(BaseModel):
    filename: str
    content_type: str
    size: int = 0
    cid: str | None = None


class EmailRecord(BaseModel):
    """Canonical form of a fetched message, ready to be stored."""

    account_id: int
    provider_message_id: str
    uid: int
    folder: str
    sender_name: str = ""
    sender_email: str = ""
    recipient_email: str = ""
    subject: str
    body_text: str = ""
    body_html: str = ""
    received_at: datetime
    is_read: bool = False
    is_starred: bool = False
    is_deleted: bool = False
    attachments: list[AttachmentMeta] = Field(default_factory=list)

    @property
    def attachments_count(self) -> int:
        return len(self.attachments)


class UpsertAction(Enum):
    inserted = "inserted"
    updated = "updated"


class UpsertResult(BaseModel):
    action: UpsertAction
    id: int
