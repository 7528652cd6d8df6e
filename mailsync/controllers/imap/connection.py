import asyncio
import logging
import re
import time
from typing import Any, Awaitable

from aioimaplib import IMAP4, IMAP4_SSL, Response

from mailsync.controllers.imap.models import FetchedMessage, FolderStatus
from mailsync.exceptions import AuthenticationError, TransientConnectionError, TransportError
from mailsync.models import Account
from mailsync.utils.password import PasswordUtils
from settings import settings

AUTHENTICATED_STATES = ("AUTH", "SELECTED")
EXISTS_RE = re.compile(rb"(\d+)\s+EXISTS", re.IGNORECASE)
UID_RE = re.compile(rb"UID\s+(\d+)", re.IGNORECASE)
FLAGS_RE = re.compile(rb"FLAGS\s*\(([^)]*)\)", re.IGNORECASE)
RESPONSE_CODE_RE = re.compile(r"\[([A-Z-]+)")


def response_text(response: Response) -> str:
    """Join the textual lines of a server response, skipping literal payloads."""
    parts = []
    for line in response.lines:
        if isinstance(line, bytearray):
            continue
        parts.append(line.decode("utf-8", errors="ignore") if isinstance(line, bytes) else str(line))
    return " ".join(part.strip() for part in parts if part.strip())


def quote_folder(name: str) -> str:
    if name.startswith('"') or not any(char in name for char in ' "\\'):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapConnection:
    """A logged-in IMAP session for one account.

    Every command is bounded by the configured command timeout and answers other than
    ``OK`` are raised as ``TransportError`` carrying the server text.
    """

    def __init__(self, client: IMAP4, account_email: str, command_timeout: float) -> None:
        self._logger = logging.getLogger(__name__)
        self._client = client
        self._account_email = account_email
        self._command_timeout = command_timeout
        self.created_at = time.monotonic()
        self.selected_folder: str | None = None

    @property
    def state(self) -> str | None:
        protocol = getattr(self._client, "protocol", None)
        return getattr(protocol, "state", None)

    @property
    def is_authenticated(self) -> bool:
        return self.state in AUTHENTICATED_STATES

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    async def _run(self, command: str, awaitable: Awaitable[Response]) -> Response:
        try:
            response = await asyncio.wait_for(awaitable, timeout=self._command_timeout)
        except asyncio.TimeoutError as e:
            raise TransientConnectionError(
                f"IMAP {command} timed out after {self._command_timeout}s for {self._account_email}"
            ) from e

        if response.result != "OK":
            text = response_text(response)
            match = RESPONSE_CODE_RE.search(text)
            raise TransportError(
                f"IMAP {command} failed: {response.result} {text}".strip(),
                code=match.group(1) if match else None,
            )
        return response

    async def select_folder(self, name: str) -> FolderStatus:
        """Open ``name`` read-write and return the server's message count."""
        response = await self._run("SELECT", self._client.select(quote_folder(name)))
        self.selected_folder = name

        total = 0
        for line in response.lines:
            if isinstance(line, bytes):
                match = EXISTS_RE.search(line)
                if match:
                    total = int(match.group(1))
        return FolderStatus(name=name, total=total)

    async def search_uids(self) -> list[int]:
        """Every UID in the selected folder, ascending."""
        response = await self._run("UID SEARCH", self._client.uid_search("ALL"))

        uids: set[int] = set()
        for line in response.lines:
            if not isinstance(line, bytes):
                continue
            line_str = line.decode("utf-8", errors="ignore").strip()
            # Skip the completion line
            if "completed" in line_str.lower() or line_str.upper().startswith("OK"):
                continue
            for part in line_str.split():
                if part.isdigit():
                    uids.add(int(part))
        return sorted(uids)

    async def fetch_message(self, uid: int) -> FetchedMessage:
        """Fetch flags and the full raw message without setting ``\\Seen``."""
        response = await self._run("UID FETCH", self._client.uid("fetch", str(uid), "(FLAGS BODY.PEEK[])"))

        flags: list[str] = []
        raw = b""
        lines: list[Any] = response.lines
        for i, line in enumerate(lines):
            if not isinstance(line, bytes) or b"FETCH" not in line:
                continue
            uid_match = UID_RE.search(line)
            if uid_match and int(uid_match.group(1)) != uid:
                continue
            flags_match = FLAGS_RE.search(line)
            if flags_match:
                flags = flags_match.group(1).decode("utf-8", errors="ignore").split()
            if i + 1 < len(lines) and isinstance(lines[i + 1], bytearray):
                raw = bytes(lines[i + 1])
            break

        if not raw:
            raise TransportError(f"IMAP UID FETCH returned no message body for UID {uid}")
        return FetchedMessage(uid=uid, flags=flags, raw=raw)

    async def noop(self) -> None:
        """Lightweight round trip; raises if the session is unusable."""
        if not self.is_authenticated:
            raise TransportError(f"Not authenticated (state: {self.state})")
        await self._run("NOOP", self._client.noop())

    async def close(self) -> None:
        try:
            await asyncio.wait_for(self._client.logout(), timeout=5)
            self._logger.debug(f"Closed connection for {self._account_email}")
        except asyncio.TimeoutError:
            self._logger.warning(f"Timeout closing connection for {self._account_email}, forcing close")
            self._force_close()
        except Exception as e:
            self._logger.warning(f"Error closing connection for {self._account_email}: {e}")
            self._force_close()

    def _force_close(self) -> None:
        protocol = getattr(self._client, "protocol", None)
        transport = getattr(protocol, "transport", None)
        if transport is not None:
            transport.close()


class ImapTransport:
    """Opens authenticated IMAP sessions for accounts."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    async def connect(self, account: Account) -> ImapConnection:
        if not account.imap_host:
            raise ValueError(f"IMAP host not configured for {account.email}")
        if not account.credentials:
            raise AuthenticationError(f"No credentials stored for {account.email}", account_id=account.id)

        port = account.imap_port or settings.imap.default_port
        username = account.imap_username or account.email
        client_cls = IMAP4_SSL if account.use_ssl else IMAP4
        client = client_cls(host=account.imap_host, port=port, timeout=settings.imap.timeout)

        try:
            await asyncio.wait_for(client.wait_hello_from_server(), timeout=settings.imap.timeout)
        except asyncio.TimeoutError as e:
            raise TransientConnectionError(
                f"Timed out waiting for greeting from {account.imap_host}", account_id=account.id
            ) from e

        try:
            password = PasswordUtils.decrypt_password(account.credentials)
        except ValueError as e:
            raise AuthenticationError(str(e), account_id=account.id) from e

        response = await asyncio.wait_for(client.login(username, password), timeout=settings.imap.timeout)
        if response.result != "OK":
            self._logger.warning(f"Failed to login to {account.imap_host} for {account.email}: {response.result}")
            raise AuthenticationError(
                f"Login failed for {account.email}: {response_text(response)}", account_id=account.id
            )

        self._logger.debug(f"Created new IMAP connection for {account.email}")
        return ImapConnection(client, account.email, settings.imap.command_timeout)
