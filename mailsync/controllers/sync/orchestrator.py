import logging

from mailsync.controllers.imap.pool import ConnectionLease, ConnectionPool
from mailsync.controllers.realtime import RealtimeRegistry
from mailsync.controllers.sync.folder_sync import FolderSyncEngine
from mailsync.controllers.sync.models import AccountSyncResult, CycleResult, FolderSyncResult
from mailsync.exceptions import AuthenticationError, TransientConnectionError
from mailsync.models import Account, SyncStatus
from mailsync.repos.account import AccountRepo
from mailsync.repos.folder_cursor import FolderCursorRepo

THROTTLED_MESSAGE = "Rate limit exceeded. Will retry automatically."
CONNECTION_ENDED_MESSAGE = "Connection ended unexpectedly - possible rate limiting. Will retry automatically."


class AccountOrchestrator:
    """Runs one sync cycle over every eligible account, one account and one folder at a time."""

    def __init__(
        self,
        account_repo: AccountRepo,
        folder_cursor_repo: FolderCursorRepo,
        folder_sync: FolderSyncEngine,
        pool: ConnectionPool,
        realtime: RealtimeRegistry,
        default_folder: str,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._folder_cursor_repo = folder_cursor_repo
        self._folder_sync = folder_sync
        self._pool = pool
        self._realtime = realtime
        self._default_folder = default_folder

    async def run_cycle(self) -> CycleResult:
        cycle = CycleResult()
        try:
            accounts = await self._account_repo.get_syncable()
            account_ids = []
            for account in accounts:
                if account.has_mailbox_settings:
                    account_ids.append(account.id)
                else:
                    self._logger.warning(f"Skipping {account.email}: IMAP host, username or credentials missing")
                    cycle.skipped += 1
            # Release the read transaction before the long-running per-account work.
            await self._account_repo.commit()
        except Exception as e:
            self._logger.exception("Sync cycle failed while listing accounts")
            cycle.error = str(e)
            return cycle

        self._logger.info(f"Starting sync cycle for {len(account_ids)} accounts")
        for account_id in account_ids:
            account_result = await self.sync_account(account_id)
            if account_result is None:
                cycle.skipped += 1
            else:
                cycle.accounts.append(account_result)

        self._logger.info(
            f"Sync cycle finished: {len(cycle.accounts)} accounts synced, {cycle.skipped} skipped, "
            f"{cycle.saved} new emails"
        )
        return cycle

    async def sync_account(self, account_id: int) -> AccountSyncResult | None:
        """Sync every eligible folder of one account. Returns None when the account was skipped."""
        try:
            account = await self._account_repo.get_active(account_id)
        except Exception as e:
            self._logger.exception(f"Could not reload account {account_id}, skipping it this cycle")
            try:
                await self._account_repo.rollback()
            except Exception as rollback_error:
                self._logger.error(f"Rollback failed for account {account_id}: {rollback_error}")
            return AccountSyncResult(
                account_id=account_id, email=f"account {account_id}", status=SyncStatus.error.value, error=str(e)
            )

        if account is None:
            self._logger.info(f"Account {account_id} was removed or deactivated, skipping")
            return None

        if self._realtime.is_active(account.id):
            self._logger.info(f"Skipping {account.email}: real-time watcher is active")
            return None

        result = AccountSyncResult(account_id=account.id, email=account.email)
        lease: ConnectionLease | None = None
        dispose = True
        try:
            await self._account_repo.mark_syncing(account)
            await self._account_repo.commit()

            if account.needs_reconnection:
                self._logger.info(f"{account.email} needs reconnection, discarding its pooled connection")
                await self._pool.evict(account.id)

            lease = self._pool.acquire(account)
            folders = await self._folder_cursor_repo.list_initially_synced_folders(account.id)
            if not folders:
                folders = [self._default_folder]

            failures = await self._sync_folders(lease, account, folders, result)
            dispose = await self._apply_outcome(account, result, failures)
        except Exception as e:
            self._logger.exception(f"Sync failed for {result.email}")
            result.status = SyncStatus.error.value
            result.error = str(e)
            await self._record_failure(account, result.email, e)
        finally:
            if lease is not None:
                await self._pool.release(lease, dispose=dispose)

        return result

    async def _sync_folders(
        self, lease: ConnectionLease, account: Account, folders: list[str], result: AccountSyncResult
    ) -> list[Exception]:
        failures: list[Exception] = []
        for folder in folders:
            try:
                folder_result = await self._folder_sync.sync_folder(lease, account, folder)
            except Exception as e:
                self._logger.error(f"Folder {folder} failed for {account.email}: {e}")
                failures.append(e)
                folder_result = FolderSyncResult(folder=folder, errors=1, error=str(e))
            result.folders.append(folder_result)
        return failures

    async def _apply_outcome(self, account: Account, result: AccountSyncResult, failures: list[Exception]) -> bool:
        """Persist the account status for this cycle. Returns whether the connection should be disposed."""
        auth_failures = [e for e in failures if isinstance(e, AuthenticationError)]
        connection_failures = [e for e in failures if isinstance(e, TransientConnectionError)]
        other_failures = [e for e in failures if e not in auth_failures and e not in connection_failures]
        folder_errors = [folder.error for folder in result.folders if folder.failed and folder.error]

        if auth_failures:
            details = f"Authentication failed: {auth_failures[0]}"
            await self._account_repo.mark_error(account, details)
            result.status, result.error = SyncStatus.error.value, details
        elif other_failures:
            details = "; ".join(str(e) for e in other_failures)
            await self._account_repo.mark_error(account, details)
            result.status, result.error = SyncStatus.error.value, details
        elif any(folder.throttled for folder in result.folders):
            await self._account_repo.mark_throttled(account, THROTTLED_MESSAGE)
            result.status, result.error = SyncStatus.throttled.value, THROTTLED_MESSAGE
        elif connection_failures:
            await self._account_repo.mark_throttled(account, CONNECTION_ENDED_MESSAGE)
            result.status, result.error = SyncStatus.throttled.value, CONNECTION_ENDED_MESSAGE
        elif folder_errors:
            details = "; ".join(folder_errors)
            await self._account_repo.mark_error(account, details)
            result.status, result.error = SyncStatus.error.value, details
        else:
            await self._account_repo.mark_idle(account)
            await self._account_repo.commit()
            if not account.initial_sync_completed and await self._account_repo.complete_initial_sync(account):
                self._logger.info(f"Initial sync completed for {account.email}, notifications enabled")
            await self._account_repo.commit()
            self._logger.info(f"Synced {account.email}: {result.saved} new emails")
            return False

        await self._account_repo.commit()
        self._logger.warning(f"Sync for {account.email} ended with status {result.status}: {result.error}")
        return True

    async def _record_failure(self, account: Account, email: str, error: Exception) -> None:
        try:
            await self._account_repo.rollback()
            await self._account_repo.refresh(account)
            if isinstance(error, TransientConnectionError):
                await self._account_repo.mark_throttled(account, CONNECTION_ENDED_MESSAGE)
            else:
                await self._account_repo.mark_error(account, str(error))
            await self._account_repo.commit()
        except Exception as e:
            self._logger.error(f"Failed to record sync failure for {email}: {e}")
