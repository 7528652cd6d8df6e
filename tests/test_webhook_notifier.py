import asyncio
import hashlib
import hmac
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import aiohttp
import pytest

from mailsync.controllers.imap.models import AttachmentMeta, EmailRecord
from mailsync.controllers.notify.webhook import SIGNATURE_HEADER, WebhookNotifier

WEBHOOK_URL = "https://hooks.example.com/mail"
SECRET = "s3cret"


class FakeResponse:
    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body

    async def text(self) -> str:
        return self.body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FakeHttpSession:
    """Replays one outcome per POST: a status code or an exception to raise."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[dict] = []
        self.closed = False

    def post(self, url, data, headers):
        self.requests.append({"url": url, "data": data, "headers": headers})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return FakeResponse(outcome, body=f"status {outcome}")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def log_repo():
    return AsyncMock()


@pytest.fixture
def make_notifier(log_repo, sleep):
    def _make(*outcomes, url=WEBHOOK_URL, secret=SECRET) -> WebhookNotifier:
        notifier = WebhookNotifier(log_repo, url=url, secret=secret, max_retries=3, timeout=5, sleep=sleep)
        notifier._http_session = FakeHttpSession(*outcomes)
        return notifier

    return _make


@pytest.fixture
def record(account):
    return EmailRecord(
        account_id=account.id,
        provider_message_id=f"{account.id}_42_INBOX",
        uid=42,
        folder="INBOX",
        sender_name="Bob Sender",
        sender_email="bob@example.com",
        recipient_email="alice@example.com",
        subject="Lunch?",
        body_text="Noon at the usual place",
        received_at=datetime.now(UTC),
        is_read=False,
        attachments=[AttachmentMeta(filename="menu.pdf", content_type="application/pdf", size=120)],
    )


def test_gate_requires_url(make_notifier, record, account):
    assert make_notifier(url="").check_gate(record, account) == "no_webhook_url"


def test_gate_requires_completed_initial_sync(make_notifier, record, account):
    account.initial_sync_completed = False
    assert make_notifier().check_gate(record, account) == "initial_sync_not_completed"


def test_gate_requires_notification_timestamp(make_notifier, record, account):
    account.notifications_enabled_at = None
    assert make_notifier().check_gate(record, account) == "notifications_enabled_at_missing"


def test_gate_drops_backfilled_mail(make_notifier, record, account):
    old = record.model_copy(update={"received_at": account.notifications_enabled_at - timedelta(minutes=1)})

    assert make_notifier().check_gate(old, account) == "email_older_than_notifications_enabled"
    assert make_notifier().check_gate(record, account) is None


async def test_gated_notification_sends_nothing(make_notifier, record, account, log_repo):
    account.initial_sync_completed = False
    notifier = make_notifier()

    result = await notifier.notify(record, account, account.user_id, email_id=7)

    assert not result.delivered
    assert result.skipped
    assert result.reason == "initial_sync_not_completed"
    assert notifier._http_session.requests == []
    log_repo.add.assert_not_awaited()


async def test_delivers_signed_payload(make_notifier, record, account, log_repo, sleep):
    notifier = make_notifier(200)

    result = await notifier.notify(record, account, account.user_id, email_id=7)

    assert result.delivered
    assert not result.skipped
    (request,) = notifier._http_session.requests
    assert request["url"] == WEBHOOK_URL
    expected = hmac.new(SECRET.encode(), request["data"].encode(), hashlib.sha256).hexdigest()
    assert request["headers"][SIGNATURE_HEADER] == expected

    payload = json.loads(request["data"])
    assert payload["event"] == "new_email"
    assert payload["account_id"] == account.id
    assert payload["user_id"] == account.user_id
    assert payload["email"]["id"] == 7
    assert payload["email"]["uid"] == 42
    assert payload["email"]["folder_name"] == "INBOX"
    assert payload["email"]["attachments_count"] == 1
    assert payload["email"]["attachments_meta"][0]["filename"] == "menu.pdf"

    log_entry = log_repo.add.await_args.args[0]
    assert log_entry.status_code == 200
    assert log_entry.delivered_at is not None
    assert log_repo.add.await_args.kwargs == {"commit": True}
    assert sleep.delays == []


async def test_unsigned_without_secret(make_notifier, record, account):
    notifier = make_notifier(200, secret="")

    await notifier.notify(record, account, account.user_id)

    assert SIGNATURE_HEADER not in notifier._http_session.requests[0]["headers"]


async def test_server_errors_are_retried(make_notifier, record, account, sleep, log_repo):
    notifier = make_notifier(503, 200)

    result = await notifier.notify(record, account, account.user_id)

    assert result.delivered
    assert len(notifier._http_session.requests) == 2
    assert sleep.delays == [1.0]
    assert log_repo.add.await_count == 2


async def test_client_errors_are_not_retried(make_notifier, record, account, sleep, log_repo):
    notifier = make_notifier(404)

    result = await notifier.notify(record, account, account.user_id)

    assert not result.delivered
    assert not result.skipped
    assert result.reason == "delivery_failed"
    assert len(notifier._http_session.requests) == 1
    assert sleep.delays == []
    assert log_repo.add.await_args.args[0].response_body == "status 404"


async def test_gives_up_after_max_retries(make_notifier, record, account, sleep, log_repo):
    notifier = make_notifier(asyncio.TimeoutError(), aiohttp.ClientConnectionError("refused"), 500)

    result = await notifier.notify(record, account, account.user_id)

    assert not result.delivered
    assert len(notifier._http_session.requests) == 3
    assert sleep.delays == [1.0, 2.0]
    assert log_repo.add.await_count == 3


async def test_delivery_log_failure_is_not_fatal(make_notifier, record, account, log_repo):
    log_repo.add.side_effect = RuntimeError("log table locked")

    result = await make_notifier(200).notify(record, account, account.user_id)

    assert result.delivered
    log_repo.rollback.assert_awaited_once()


async def test_close_session(make_notifier):
    notifier = make_notifier()
    session = notifier._http_session

    await notifier.close_session()

    assert session.closed
    assert notifier._http_session is None
