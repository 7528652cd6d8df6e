import asyncio
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from aioimaplib import Response

from mailsync.controllers.imap.connection import ImapConnection, quote_folder, response_text
from mailsync.exceptions import TransientConnectionError, TransportError
from tests.fakes import make_raw


class FakeClient:
    def __init__(self, responses: dict[str, Response], state: str = "SELECTED") -> None:
        self.responses = responses
        self.protocol = SimpleNamespace(state=state, transport=Mock())
        self.calls: list[tuple] = []
        self.delay = 0.0

    async def _answer(self, name: str, *args) -> Response:
        self.calls.append((name, *args))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.responses[name]

    def select(self, folder):
        return self._answer("select", folder)

    def uid_search(self, criteria):
        return self._answer("uid_search", criteria)

    def uid(self, command, *args):
        return self._answer("uid", command, *args)

    def noop(self):
        return self._answer("noop")

    async def logout(self):
        raise ConnectionResetError("peer went away")


def make_connection(client: FakeClient, command_timeout: float = 5) -> ImapConnection:
    return ImapConnection(client, "alice@example.com", command_timeout)


def test_quote_folder():
    assert quote_folder("INBOX") == "INBOX"
    assert quote_folder("Sent Items") == '"Sent Items"'
    assert quote_folder('"Already quoted"') == '"Already quoted"'


def test_response_text_skips_literals():
    response = Response("NO", [b"[ALERT] first", bytearray(b"payload"), b"second"])
    assert response_text(response) == "[ALERT] first second"


async def test_select_reads_exists_count():
    client = FakeClient({"select": Response("OK", [b"12 EXISTS", b"0 RECENT", b"[READ-WRITE] SELECT completed"])})
    connection = make_connection(client)

    status = await connection.select_folder("Sent Items")

    assert status.total == 12
    assert connection.selected_folder == "Sent Items"
    assert client.calls == [("select", '"Sent Items"')]


async def test_search_returns_sorted_uids():
    client = FakeClient({"uid_search": Response("OK", [b"9 3 5", b"SEARCH completed (0.001 secs)."])})

    assert await make_connection(client).search_uids() == [3, 5, 9]


async def test_search_on_empty_folder():
    client = FakeClient({"uid_search": Response("OK", [b"", b"SEARCH completed"])})

    assert await make_connection(client).search_uids() == []


async def test_fetch_reads_flags_and_literal():
    raw = make_raw("Quarterly report")
    client = FakeClient(
        {
            "uid": Response(
                "OK",
                [
                    b"1 FETCH (UID 9 FLAGS (\\Seen \\Flagged) BODY[] {%d}" % len(raw),
                    bytearray(raw),
                    b")",
                    b"FETCH completed",
                ],
            )
        }
    )

    message = await make_connection(client).fetch_message(9)

    assert message.uid == 9
    assert message.flags == ["\\Seen", "\\Flagged"]
    assert message.raw == raw
    assert client.calls == [("uid", "fetch", "9", "(FLAGS BODY.PEEK[])")]


async def test_fetch_without_body_raises():
    client = FakeClient({"uid": Response("OK", [b"FETCH completed"])})

    with pytest.raises(TransportError):
        await make_connection(client).fetch_message(9)


async def test_rejected_command_carries_response_code():
    client = FakeClient({"select": Response("NO", [b"[NONEXISTENT] Unknown Mailbox: Archive (Failure)"])})

    with pytest.raises(TransportError) as exc_info:
        await make_connection(client).select_folder("Archive")

    assert exc_info.value.code == "NONEXISTENT"
    assert "Unknown Mailbox" in exc_info.value.message


async def test_slow_command_times_out_as_transient():
    client = FakeClient({"noop": Response("OK", [b"NOOP completed"])})
    client.delay = 1.0

    with pytest.raises(TransientConnectionError):
        await make_connection(client, command_timeout=0.01).noop()


async def test_noop_requires_authenticated_state():
    client = FakeClient({"noop": Response("OK", [b"NOOP completed"])}, state="NONAUTH")
    connection = make_connection(client)

    assert not connection.is_authenticated
    with pytest.raises(TransportError):
        await connection.noop()
    assert client.calls == []


async def test_close_forces_transport_shut_when_logout_fails():
    client = FakeClient({})

    await make_connection(client).close()

    client.protocol.transport.close.assert_called_once()
