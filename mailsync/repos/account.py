from datetime import UTC, datetime

from sqlalchemy import func, update
from sqlalchemy.sql.dml import Update

from mailsync.models.account import Account, SyncStatus
from mailsync.repos.base import BaseRepo

ERROR_DETAILS_MAX_LENGTH = 500


def build_complete_initial_sync_stmt(account_id: int) -> Update:
    """Flip ``initial_sync_completed`` only if nobody else has flipped it yet."""
    return (
        update(Account)
        .where(Account.id == account_id, Account.initial_sync_completed.is_(False))
        .values(initial_sync_completed=True, notifications_enabled_at=func.now(), updated_at=func.now())
        .returning(Account.id)
    )


class AccountRepo(BaseRepo[Account]):
    """Repository for Account model operations."""

    def __init__(self) -> None:
        super().__init__(Account)

    async def get_syncable(self) -> list[Account]:
        """Get all active accounts, oldest first."""
        result = await self.execute(self.base_stmt.where(Account.is_active.is_(True)).order_by(Account.id))
        return list(result.all())

    async def get_active(self, account_id: int) -> Account | None:
        """Re-read an account, returning None if it was deleted or deactivated."""
        result = await self.execute(
            self.base_stmt.where(Account.id == account_id, Account.is_active.is_(True)).execution_options(
                populate_existing=True
            )
        )
        return result.one_or_none()

    async def mark_syncing(self, account: Account) -> Account:
        return await self.update(account, sync_status=SyncStatus.syncing, last_sync_attempt_at=datetime.now(UTC))

    async def mark_idle(self, account: Account) -> Account:
        """Mark a successful cycle: clears any reconnection request and error detail."""
        return await self.update(
            account,
            sync_status=SyncStatus.idle,
            needs_reconnection=False,
            sync_error_details=None,
            last_error=None,
            last_successful_sync_at=datetime.now(UTC),
        )

    async def mark_error(self, account: Account, details: str) -> Account:
        return await self.update(
            account,
            sync_status=SyncStatus.error,
            sync_error_details=details[:ERROR_DETAILS_MAX_LENGTH],
            last_error=details[:ERROR_DETAILS_MAX_LENGTH],
        )

    async def mark_throttled(self, account: Account, message: str) -> Account:
        return await self.update(account, sync_status=SyncStatus.throttled, sync_error_details=message)

    async def mark_needs_reconnection(self, account: Account, reason: str) -> Account:
        return await self.update(
            account,
            needs_reconnection=True,
            last_error=reason[:ERROR_DETAILS_MAX_LENGTH],
            last_connection_attempt_at=datetime.now(UTC),
        )

    async def complete_initial_sync(self, account: Account) -> bool:
        """Compare-and-set the initial sync flag. Returns True only for the caller that flipped it."""
        result = await self._db.session.execute(build_complete_initial_sync_stmt(account.id))
        won = result.scalar_one_or_none() is not None
        await self.flush()
        if won:
            await self.refresh(account)
        return won
