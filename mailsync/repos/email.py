import logging

from sqlalchemy import func, literal_column
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mailsync.controllers.imap.models import EmailRecord, UpsertAction, UpsertResult
from mailsync.exceptions import StorageError
from mailsync.models import Email
from mailsync.repos.base import BaseRepo

UNIQUE_VIOLATION = "23505"


def build_upsert_stmt(record: EmailRecord) -> Insert:
    """Insert-or-update returning the row id and whether the row was freshly inserted.

    ``xmax`` is zero only for a tuple written by an INSERT, which gives an exact
    inserted/updated signal without comparing timestamps.
    """
    values = {
        "account_id": record.account_id,
        "provider_message_id": record.provider_message_id,
        "uid": record.uid,
        "folder": record.folder,
        "sender_name": record.sender_name,
        "sender_email": record.sender_email,
        "recipient_email": record.recipient_email,
        "subject": record.subject,
        "body_text": record.body_text,
        "body_html": record.body_html,
        "received_at": record.received_at,
        "is_read": record.is_read,
        "is_starred": record.is_starred,
        "is_deleted": record.is_deleted,
        "attachments_count": record.attachments_count,
        "attachments_meta": [attachment.model_dump() for attachment in record.attachments],
    }
    stmt = insert(Email).values(**values)
    updatable = [key for key in values if key not in ("account_id", "provider_message_id")]
    return stmt.on_conflict_do_update(
        index_elements=["account_id", "provider_message_id"],
        set_={**{key: stmt.excluded[key] for key in updatable}, "updated_at": func.now()},
    ).returning(Email.id, literal_column("(xmax = 0)").label("inserted"))


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(exc).lower()


class EmailRepo(BaseRepo[Email]):
    """Repository for Email model operations."""

    def __init__(self) -> None:
        super().__init__(Email)
        self._logger = logging.getLogger(__name__)

    async def get_by_key(self, account_id: int, provider_message_id: str) -> Email | None:
        """Get email by its idempotency key."""
        result = await self.execute(
            self.base_stmt.where(
                Email.account_id == account_id, Email.provider_message_id == provider_message_id
            ).execution_options(populate_existing=True)
        )
        return result.one_or_none()

    async def upsert(self, record: EmailRecord) -> UpsertResult:
        """Store ``record`` exactly once and report whether it was inserted or updated.

        A unique violation from a concurrent writer is resolved by re-reading the row
        and applying only the read/starred flags.
        """
        try:
            async with self._db.session.begin_nested():
                row = (await self._db.session.execute(build_upsert_stmt(record))).one()
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise StorageError(
                    f"Failed to store email {record.provider_message_id}: {e}", account_id=record.account_id
                ) from e
            return await self._update_flags_after_conflict(record)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to store email {record.provider_message_id}: {e}", account_id=record.account_id
            ) from e

        action = UpsertAction.inserted if row.inserted else UpsertAction.updated
        return UpsertResult(action=action, id=row.id)

    async def _update_flags_after_conflict(self, record: EmailRecord) -> UpsertResult:
        self._logger.info(f"Concurrent insert detected for {record.provider_message_id}, updating flags")
        try:
            existing = await self.get_by_key(record.account_id, record.provider_message_id)
            if existing is None:
                raise StorageError(
                    f"Email {record.provider_message_id} conflicted on insert but could not be re-read",
                    account_id=record.account_id,
                )
            await self.update(existing, is_read=record.is_read, is_starred=record.is_starred)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update flags for {record.provider_message_id}: {e}", account_id=record.account_id
            ) from e
        return UpsertResult(action=UpsertAction.updated, id=existing.id)

    async def commit(self) -> None:
        """Commit the stored emails; a failed commit means they were never stored."""
        try:
            await super().commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to commit stored emails: {e}") from e
