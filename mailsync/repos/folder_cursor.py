from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.sql.dml import Update

from mailsync.models import FolderCursor
from mailsync.repos.base import BaseRepo

ERROR_MESSAGE_MAX_LENGTH = 500


def build_get_or_create_stmt(account_id: int, folder: str) -> Insert:
    return (
        insert(FolderCursor)
        .values(account_id=account_id, folder=folder, last_uid_synced=0, total_server_count=0)
        .on_conflict_do_nothing(index_elements=["account_id", "folder"])
    )


def build_advance_stmt(account_id: int, folder: str, last_uid_synced: int, total_server_count: int) -> Insert:
    """Upsert that never moves ``last_uid_synced`` backwards, even when two passes race."""
    stmt = insert(FolderCursor).values(
        account_id=account_id,
        folder=folder,
        last_uid_synced=last_uid_synced,
        total_server_count=total_server_count,
        last_sync_at=func.now(),
        sync_errors_count=0,
        last_error_message=None,
    )
    return stmt.on_conflict_do_update(
        index_elements=["account_id", "folder"],
        set_={
            "last_uid_synced": func.greatest(FolderCursor.last_uid_synced, stmt.excluded.last_uid_synced),
            "total_server_count": stmt.excluded.total_server_count,
            "last_sync_at": func.now(),
            "sync_errors_count": 0,
            "last_error_message": None,
            "updated_at": func.now(),
        },
    )


def build_record_error_stmt(account_id: int, folder: str, message: str) -> Update:
    return (
        update(FolderCursor)
        .where(FolderCursor.account_id == account_id, FolderCursor.folder == folder)
        .values(
            sync_errors_count=FolderCursor.sync_errors_count + 1,
            last_error_message=message[:ERROR_MESSAGE_MAX_LENGTH],
            updated_at=func.now(),
        )
    )


class FolderCursorRepo(BaseRepo[FolderCursor]):
    """Repository for per-folder sync cursors."""

    def __init__(self) -> None:
        super().__init__(FolderCursor)

    async def get(self, account_id: int, folder: str) -> FolderCursor:
        """Get the cursor for an account/folder combination, creating it on first access."""
        await self._db.session.execute(build_get_or_create_stmt(account_id, folder))
        await self.flush()

        query = self.base_stmt.where(FolderCursor.account_id == account_id, FolderCursor.folder == folder)
        result = await self.execute(query.execution_options(populate_existing=True))
        cursor = result.one_or_none()
        if cursor is None:
            raise ValueError(f"Failed to create folder cursor for {account_id}/{folder}")
        return cursor

    async def advance(self, account_id: int, folder: str, last_uid_synced: int, total_server_count: int) -> None:
        """Move the cursor forward to ``last_uid_synced`` and store the server total."""
        await self._db.session.execute(build_advance_stmt(account_id, folder, last_uid_synced, total_server_count))
        await self.flush()

    async def record_error(self, account_id: int, folder: str, message: str) -> None:
        await self._db.session.execute(build_record_error_stmt(account_id, folder, message))
        await self.flush()

    async def list_initially_synced_folders(self, account_id: int) -> list[str]:
        """Folders whose initial full sync has completed for this account."""
        result = await self.execute(
            self.base_stmt.where(
                FolderCursor.account_id == account_id, FolderCursor.initial_sync_completed.is_(True)
            ).order_by(FolderCursor.folder)
        )
        return [cursor.folder for cursor in result.all()]
