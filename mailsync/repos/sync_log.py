from mailsync.models import SyncLog
from mailsync.repos.base import BaseRepo


class SyncLogRepo(BaseRepo[SyncLog]):
    """Repository for SyncLog model operations."""

    def __init__(self) -> None:
        super().__init__(SyncLog)

    async def record(
        self,
        account_id: int,
        folder: str,
        fetched: int,
        saved: int,
        updated: int,
        errors: int,
        duration_ms: int,
        error_details: str | None = None,
    ) -> SyncLog:
        """Append one sync activity entry."""
        sync_log = SyncLog(
            account_id=account_id,
            folder=folder,
            sync_type="incremental",
            emails_fetched=fetched,
            emails_saved=saved,
            emails_updated=updated,
            errors_count=errors,
            duration_ms=duration_ms,
            error_details=error_details,
        )
        await self.add(sync_log, commit=True)
        return sync_log
