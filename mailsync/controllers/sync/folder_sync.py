import asyncio
import logging
import time
from typing import Awaitable, Callable

from mailsync.controllers.imap.connection import ImapConnection
from mailsync.controllers.imap.errors import ErrorClassifier, ErrorKind
from mailsync.controllers.imap.lifecycle import ConnectionLifecycleManager
from mailsync.controllers.imap.models import EmailRecord, FolderStatus, UpsertAction
from mailsync.controllers.imap.normalizer import MessageNormalizer
from mailsync.controllers.imap.pool import ConnectionLease
from mailsync.controllers.imap.retry import RetryExecutor
from mailsync.controllers.notify.webhook import WebhookNotifier
from mailsync.controllers.sync.models import FolderSyncResult
from mailsync.exceptions import (
    AuthenticationError,
    NormalizationError,
    NotFoundError,
    StorageError,
    ThrottledError,
    TransientConnectionError,
    UnhealthyConnectionError,
)
from mailsync.models import Account
from mailsync.repos.account import AccountRepo
from mailsync.repos.email import EmailRepo
from mailsync.repos.folder_cursor import FolderCursorRepo
from mailsync.repos.sync_log import SyncLogRepo
from settings.settings import RetrySettings

SleepFunc = Callable[[float], Awaitable[None]]


def partition(uids: list[int], size: int) -> list[list[int]]:
    return [uids[i : i + size] for i in range(0, len(uids), size)]


class _AbortPass(Exception):
    """Stops batch processing early; the wrapped error is raised once the cursor is saved."""

    def __init__(self, error: Exception) -> None:
        super().__init__(str(error))
        self.error = error


class FolderSyncEngine:
    """Incrementally synchronizes one folder of one account.

    A pass verifies the connection, opens the folder and lists every UID, then fetches the
    UIDs above the stored cursor in fixed-size batches with a pause between batches. Each
    message is normalized, upserted and, when it was newly inserted, announced through the
    notifier. The cursor only ever moves forward, and only after the batches are done.
    """

    def __init__(
        self,
        lifecycle: ConnectionLifecycleManager,
        retry: RetryExecutor,
        classifier: ErrorClassifier,
        normalizer: MessageNormalizer,
        notifier: WebhookNotifier,
        account_repo: AccountRepo,
        email_repo: EmailRepo,
        folder_cursor_repo: FolderCursorRepo,
        sync_log_repo: SyncLogRepo,
        batch_size: int,
        batch_delay: float,
        throttle_pause: float,
        open_folder_policy: RetrySettings,
        enumerate_policy: RetrySettings,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._lifecycle = lifecycle
        self._retry = retry
        self._classifier = classifier
        self._normalizer = normalizer
        self._notifier = notifier
        self._account_repo = account_repo
        self._email_repo = email_repo
        self._folder_cursor_repo = folder_cursor_repo
        self._sync_log_repo = sync_log_repo
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._throttle_pause = throttle_pause
        self._open_folder_policy = open_folder_policy
        self._enumerate_policy = enumerate_policy
        self._sleep = sleep

    async def sync_folder(self, lease: ConnectionLease, account: Account, folder: str) -> FolderSyncResult:
        """Run one pass over ``folder``.

        Returns a result for not-found folders (``skipped``) and for throttling that outlasts
        the retry budget while opening or listing the folder (``throttled``). Raises
        ``AuthenticationError`` after flagging the account for reconnection, and
        ``StorageError``, ``TransientConnectionError`` or ``UnhealthyConnectionError`` for
        failures that end the pass. Other errors are recorded on the result.
        """
        started = time.monotonic()
        result = FolderSyncResult(folder=folder)
        try:
            await self._run_pass(lease, account, folder, result)
        except NotFoundError as e:
            self._logger.warning(f"Folder {folder} not found for {account.email}, skipping: {e.message}")
            result.skipped = True
        except ThrottledError as e:
            self._logger.warning(f"Throttled while syncing {account.email}:{folder}, will retry next cycle: {e}")
            result.throttled = True
            result.errors += 1
            result.error = e.message
        except AuthenticationError as e:
            result.errors += 1
            result.error = e.message
            await self._safe_rollback(account)
            await self._record_folder_error(account, folder, e.message)
            await self._account_repo.mark_needs_reconnection(account, e.message)
            await self._account_repo.commit()
            raise
        except (StorageError, TransientConnectionError, UnhealthyConnectionError) as e:
            result.errors += 1
            result.error = e.message
            await self._safe_rollback(account)
            await self._record_folder_error(account, folder, e.message)
            raise
        except Exception as e:
            self._logger.exception(f"Error syncing folder {account.email}:{folder}")
            result.errors += 1
            result.error = getattr(e, "message", None) or str(e)
            await self._safe_rollback(account)
            await self._record_folder_error(account, folder, str(e))
        finally:
            result.duration_ms = int((time.monotonic() - started) * 1000)
            await self._write_sync_log(account, result)

        self._logger.info(
            f"Completed {account.email}:{folder}: fetched {result.fetched}, saved {result.saved}, "
            f"updated {result.updated}, errors {result.errors}, duration {result.duration_ms}ms"
        )
        return result

    async def _run_pass(self, lease: ConnectionLease, account: Account, folder: str, result: FolderSyncResult) -> None:
        await self._lifecycle.ensure_healthy(lease)

        async def reconnect() -> None:
            await self._lifecycle.reconnect(lease)

        async def open_folder() -> FolderStatus:
            connection = await lease.connection()
            return await connection.select_folder(folder)

        async def list_uids() -> list[int]:
            connection = await lease.connection()
            # A reconnect between the two steps leaves the new session without a selected folder.
            if connection.selected_folder != folder:
                await connection.select_folder(folder)
            return await connection.search_uids()

        status = await self._retry.run(
            open_folder, self._open_folder_policy, on_auth_error=reconnect, description=f"SELECT {folder}"
        )
        all_uids = await self._retry.run(
            list_uids, self._enumerate_policy, on_auth_error=reconnect, description=f"UID SEARCH {folder}"
        )

        # Loaded only once the folder is known to exist, so a missing folder leaves no cursor row.
        cursor = await self._folder_cursor_repo.get(account.id, folder)
        last_uid = cursor.last_uid_synced
        await self._folder_cursor_repo.commit()

        new_uids = sorted(uid for uid in all_uids if uid > last_uid)
        if not new_uids:
            self._logger.debug(f"No new messages in {account.email}:{folder} (last UID {last_uid})")
            await self._advance(account, folder, last_uid, status.total)
            return

        batches = partition(new_uids, self._batch_size)
        self._logger.info(
            f"Processing {len(new_uids)} new messages for {account.email}:{folder} in {len(batches)} batches"
        )

        highest = last_uid
        abort: _AbortPass | None = None
        try:
            for index, batch in enumerate(batches):
                if index > 0:
                    await self._sleep(self._batch_delay)
                for uid in batch:
                    await self._process_message(lease, account, folder, uid, result)
                    highest = max(highest, uid)
        except _AbortPass as e:
            abort = e
            await self._safe_rollback(account)

        await self._advance(account, folder, max(last_uid, highest), status.total)
        if abort is not None:
            raise abort.error

    async def _process_message(
        self, lease: ConnectionLease, account: Account, folder: str, uid: int, result: FolderSyncResult
    ) -> None:
        connection = await self._selected_connection(lease, account, folder)
        result.fetched += 1
        try:
            message = await connection.fetch_message(uid)
            record = self._normalizer.normalize(account.id, folder, message)
            upsert = await self._email_repo.upsert(record)
            await self._email_repo.commit()
        except NormalizationError as e:
            self._logger.warning(f"Skipping UID {uid} in {account.email}:{folder}: {e.message}")
            result.errors += 1
            return
        except StorageError as e:
            self._logger.error(f"Storage failure on UID {uid} in {account.email}:{folder}: {e.message}")
            raise _AbortPass(e) from e
        except Exception as e:
            kind = self._classifier.classify(e)
            if kind is ErrorKind.throttled:
                self._logger.warning(f"Throttling detected on UID {uid} in {account.email}:{folder}, pausing")
                result.errors += 1
                await self._sleep(self._throttle_pause)
                return
            if kind is ErrorKind.authentication:
                raise _AbortPass(AuthenticationError(f"Lost authentication fetching UID {uid}: {e}")) from e
            if kind is ErrorKind.transient_connection:
                raise _AbortPass(TransientConnectionError(f"Connection dropped fetching UID {uid}: {e}")) from e

            self._logger.error(f"Error processing UID {uid} in {account.email}:{folder}: {e}")
            result.errors += 1
            return

        if upsert.action is UpsertAction.inserted:
            result.saved += 1
            await self._notify(account, record, upsert.id, result)
        else:
            result.updated += 1

    async def _selected_connection(self, lease: ConnectionLease, account: Account, folder: str) -> ImapConnection:
        """Return the lease's connection with ``folder`` selected.

        The pool replaces aged-out connections on access, and a fresh session has no folder
        selected, so the folder is reopened before fetching. Failing to reopen it ends the pass.
        """
        try:
            connection = await lease.connection()
            if connection.selected_folder != folder:
                self._logger.info(f"Reopening {account.email}:{folder} on a replaced connection")
                await connection.select_folder(folder)
        except Exception as e:
            kind = self._classifier.classify(e)
            message = f"Could not reopen {folder}: {e}"
            if kind is ErrorKind.authentication:
                raise _AbortPass(AuthenticationError(message)) from e
            if kind is ErrorKind.throttled:
                raise _AbortPass(ThrottledError(message)) from e
            if kind is ErrorKind.not_found:
                raise _AbortPass(NotFoundError(message)) from e
            raise _AbortPass(TransientConnectionError(message)) from e
        return connection

    async def _notify(self, account: Account, record: EmailRecord, email_id: int, result: FolderSyncResult) -> None:
        try:
            notification = await self._notifier.notify(record, account, account.user_id, email_id=email_id)
        except Exception as e:
            self._logger.error(f"Notifier failed for UID {record.uid} in {account.email}:{record.folder}: {e}")
            result.notification_errors += 1
            return

        if not notification.delivered and not notification.skipped:
            result.notification_errors += 1

    async def _advance(self, account: Account, folder: str, last_uid: int, total: int) -> None:
        await self._folder_cursor_repo.advance(account.id, folder, last_uid, total)
        await self._folder_cursor_repo.commit()

    async def _record_folder_error(self, account: Account, folder: str, message: str) -> None:
        try:
            await self._folder_cursor_repo.record_error(account.id, folder, message)
            await self._folder_cursor_repo.commit()
        except Exception as e:
            self._logger.error(f"Failed to record folder error for {account.email}:{folder}: {e}")
            await self._safe_rollback(account)

    async def _write_sync_log(self, account: Account, result: FolderSyncResult) -> None:
        try:
            await self._sync_log_repo.record(
                account_id=account.id,
                folder=result.folder,
                fetched=result.fetched,
                saved=result.saved,
                updated=result.updated,
                errors=result.errors,
                duration_ms=result.duration_ms,
                error_details=result.error,
            )
        except Exception as e:
            self._logger.error(f"Failed to write sync log for {account.email}:{result.folder}: {e}")
            await self._safe_rollback(account)

    async def _safe_rollback(self, account: Account | None = None) -> None:
        """Roll back the session and reload ``account``, which the rollback expired."""
        try:
            await self._folder_cursor_repo.rollback()
            if account is not None:
                await self._account_repo.refresh(account)
        except Exception as e:
            self._logger.error(f"Rollback failed: {e}")
