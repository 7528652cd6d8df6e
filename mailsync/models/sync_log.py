from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SyncLog(Base):
    """One row per folder sync attempt. Written for observability only."""

    __tablename__ = "sync_logs"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id"), nullable=False, index=True)
    folder: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    sync_type: Mapped[str] = mapped_column(sa.String(50), nullable=False, server_default="incremental")
    emails_fetched: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    emails_saved: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    emails_updated: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    errors_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    duration_ms: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    error_details: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<SyncLog(account='{self.account_id}', folder='{self.folder}', saved={self.emails_saved}, "
            f"errors={self.errors_count})>"
        )
