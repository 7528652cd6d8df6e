import asyncio
import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

import aiohttp
from pydantic import BaseModel

from mailsync.controllers.imap.models import EmailRecord
from mailsync.models import Account, WebhookLog
from mailsync.repos.webhook_log import WebhookLogRepo
from settings import settings

SIGNATURE_HEADER = "x-mailsync-signature"


class NotificationResult(BaseModel):
    delivered: bool
    reason: str | None = None
    # Gated out on purpose, as opposed to a failed delivery.
    skipped: bool = False


class WebhookNotifier:
    """Posts a ``new_email`` event for each newly stored message, with retry logic."""

    def __init__(
        self,
        webhook_log_repo: WebhookLogRepo,
        url: str | None = None,
        secret: str | None = None,
        max_retries: int | None = None,
        timeout: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._http_session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._webhook_log_repo = webhook_log_repo
        self._url = url if url is not None else settings.webhook.url
        self._secret = secret if secret is not None else settings.webhook.secret
        self._max_retries = max_retries if max_retries is not None else settings.webhook.max_retries
        self._timeout = timeout if timeout is not None else settings.webhook.timeout
        self._sleep = sleep

    async def init_session(self) -> None:
        """Initialize HTTP session for webhook delivery."""
        async with self._session_lock:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))

    async def close_session(self) -> None:
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    def _generate_signature(self, body: str) -> str:
        """HMAC-SHA256 of the exact request body, hex encoded."""
        if not self._secret:
            return ""
        return hmac.new(self._secret.encode("utf-8"), msg=body.encode("utf-8"), digestmod=hashlib.sha256).hexdigest()

    def check_gate(self, record: EmailRecord, account: Account) -> str | None:
        """Return the reason to skip this notification, or None if it should be sent."""
        if not self._url:
            return "no_webhook_url"
        if not account.initial_sync_completed:
            return "initial_sync_not_completed"
        if account.notifications_enabled_at is None:
            return "notifications_enabled_at_missing"
        if record.received_at < account.notifications_enabled_at:
            return "email_older_than_notifications_enabled"
        return None

    def build_payload(
        self, record: EmailRecord, email_id: int | None, account: Account, user_id: str | None
    ) -> dict[str, Any]:
        return {
            "event": "new_email",
            "timestamp": datetime.now(UTC).isoformat(),
            "account_id": account.id,
            "user_id": user_id,
            "email": {
                "id": email_id,
                "uid": record.uid,
                "subject": record.subject,
                "sender_name": record.sender_name,
                "sender_email": record.sender_email,
                "recipient_email": record.recipient_email,
                "body_text": record.body_text,
                "body_html": record.body_html,
                "received_at": record.received_at.isoformat(),
                "folder_name": record.folder,
                "is_read": record.is_read,
                "is_starred": record.is_starred,
                "attachments_count": record.attachments_count,
                "attachments_meta": [attachment.model_dump() for attachment in record.attachments],
            },
        }

    async def notify(
        self, record: EmailRecord, account: Account, user_id: str | None, email_id: int | None = None
    ) -> NotificationResult:
        reason = self.check_gate(record, account)
        if reason:
            self._logger.debug(f"Skipping webhook for {account.email}:{record.folder} UID {record.uid}: {reason}")
            return NotificationResult(delivered=False, reason=reason, skipped=True)

        payload_json = json.dumps(self.build_payload(record, email_id, account, user_id))
        delivered = await self._send_with_retry(account, record, payload_json)
        return NotificationResult(delivered=delivered, reason=None if delivered else "delivery_failed")

    async def _send_with_retry(self, account: Account, record: EmailRecord, payload_json: str) -> bool:
        """Send webhook with exponential backoff retry logic."""
        await self.init_session()
        if not self._http_session or not self._url:
            self._logger.error("HTTP session not initialized")
            return False

        headers = {"Content-Type": "application/json"}
        signature = self._generate_signature(payload_json)
        if signature:
            headers[SIGNATURE_HEADER] = signature

        base_delay = 1.0
        for attempt in range(1, self._max_retries + 1):
            try:
                async with self._http_session.post(self._url, data=payload_json, headers=headers) as response:
                    ok = 200 <= response.status < 300
                    await self._log_delivery(
                        account=account,
                        record=record,
                        status_code=response.status,
                        response_body=None if ok else await response.text(),
                        attempts=attempt,
                        delivered=ok,
                    )
                    if ok:
                        self._logger.info(
                            f"Webhook delivered for {account.email}:{record.folder} UID {record.uid}"
                        )
                        return True

                    self._logger.warning(
                        f"Webhook failed with status {response.status} for {account.email}:{record.folder}, "
                        f"UID {record.uid}"
                    )
                    # Don't retry for client errors (4xx)
                    if 400 <= response.status < 500:
                        return False

            except asyncio.TimeoutError:
                self._logger.warning(
                    f"Webhook timeout (attempt {attempt}) for {account.email}:{record.folder} UID {record.uid}"
                )
                await self._log_delivery(account, record, None, "Timeout", attempt, False)
            except aiohttp.ClientError as e:
                self._logger.warning(
                    f"Webhook error (attempt {attempt}) for {account.email}:{record.folder} UID {record.uid}: {e}"
                )
                await self._log_delivery(account, record, None, str(e), attempt, False)

            if attempt < self._max_retries:
                await self._sleep(base_delay * (2 ** (attempt - 1)))

        self._logger.error(
            f"Webhook delivery failed after {self._max_retries} attempts for {account.email}:{record.folder}, "
            f"UID {record.uid}"
        )
        return False

    async def _log_delivery(
        self,
        account: Account,
        record: EmailRecord,
        status_code: int | None,
        response_body: str | None,
        attempts: int,
        delivered: bool,
    ) -> None:
        try:
            await self._webhook_log_repo.add(
                WebhookLog(
                    account_id=account.id,
                    folder=record.folder,
                    uid=record.uid,
                    webhook_url=self._url,
                    status_code=status_code,
                    response_body=response_body,
                    attempts=attempts,
                    delivered_at=datetime.now(UTC) if delivered else None,
                ),
                commit=True,
            )
        except Exception as e:
            self._logger.error(f"Failed to log webhook delivery: {e}")
            # The session is shared with the sync pass and must stay usable for the next upsert.
            await self._webhook_log_repo.rollback()
