from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class FolderCursor(Base, TimestampMixin):
    """Highest UID already synchronized per account/folder combination."""

    __tablename__ = "folder_cursors"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id"), nullable=False, index=True)
    folder: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    last_uid_synced: Mapped[int] = mapped_column(sa.BigInteger, default=0, server_default="0", nullable=False)
    total_server_count: Mapped[int] = mapped_column(sa.Integer, default=0, server_default="0", nullable=False)
    initial_sync_completed: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false(), nullable=False
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    sync_errors_count: Mapped[int] = mapped_column(sa.Integer, default=0, server_default="0", nullable=False)
    last_error_message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (sa.UniqueConstraint("account_id", "folder", name="uq_folder_cursor_account_folder"),)

    def __repr__(self) -> str:
        return f"<FolderCursor(account='{self.account_id}', folder='{self.folder}', last_uid={self.last_uid_synced})>"
