from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin

SUBJECT_MAX_LENGTH = 255


class Email(Base, TimestampMixin):
    """A message observed on the server, keyed by account, UID and folder."""

    __tablename__ = "emails"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id"), nullable=False, index=True)
    provider_message_id: Mapped[str] = mapped_column(sa.String(512), nullable=False)
    uid: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    folder: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    sender_name: Mapped[str] = mapped_column(sa.String(255), nullable=False, server_default="")
    sender_email: Mapped[str] = mapped_column(sa.String(255), nullable=False, server_default="")
    recipient_email: Mapped[str] = mapped_column(sa.String(255), nullable=False, server_default="")
    subject: Mapped[str] = mapped_column(sa.String(SUBJECT_MAX_LENGTH), nullable=False)
    body_text: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    body_html: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="")
    received_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)

    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    is_starred: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    is_deleted: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())

    attachments_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="0")
    attachments_meta: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB(), nullable=False, server_default=sa.text("'[]'")
    )

    __table_args__ = (
        UniqueConstraint("account_id", "provider_message_id", name="uq_email_account_provider_message"),
        sa.Index("ix_emails_account_folder_uid", "account_id", "folder", "uid"),
    )

    def __repr__(self) -> str:
        return f"<Email(account='{self.account_id}', folder='{self.folder}', uid={self.uid})>"
