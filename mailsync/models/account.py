from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin
from .decorators.types import EnumStringType


class SyncStatus(Enum):
    idle = "idle"
    syncing = "syncing"
    error = "error"
    throttled = "throttled"


class Account(Base, TimestampMixin):
    """A remote mailbox polled by the sync engine."""

    __tablename__ = "accounts"

    user_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True, index=True)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    imap_host: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    imap_port: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    imap_username: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    credentials: Mapped[str | None] = mapped_column(sa.String(512), nullable=True, comment="Encrypted password")
    use_ssl: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())

    needs_reconnection: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    initial_sync_completed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    notifications_enabled_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    sync_status: Mapped[SyncStatus] = mapped_column(
        EnumStringType(SyncStatus), nullable=False, server_default=SyncStatus.idle.name
    )
    sync_error_details: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    last_successful_sync_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    last_sync_attempt_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    last_connection_attempt_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    @property
    def has_mailbox_settings(self) -> bool:
        return bool(self.imap_host and (self.imap_username or self.email) and self.credentials)

    def __repr__(self) -> str:
        return f"<Account(email='{self.email}', status='{self.sync_status.name}')>"
