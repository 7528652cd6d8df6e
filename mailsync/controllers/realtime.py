import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator


@dataclass
class RealtimeSession:
    account_id: int
    push_active: bool = False


class RealtimeRegistry:
    """Coordination signal shared with the real-time watcher.

    Polling and push must never use the same account's connection slot at once. The watcher
    registers an account for the duration of its session and flags when it is actually in
    push mode; the sync orchestrator only reads ``is_active``.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)
        self._sessions: dict[int, RealtimeSession] = {}

    @asynccontextmanager
    async def watch(self, account_id: int) -> AsyncGenerator[RealtimeSession, None]:
        if account_id in self._sessions:
            raise RuntimeError(f"Account {account_id} already has a real-time session")
        session = RealtimeSession(account_id=account_id)
        self._sessions[account_id] = session
        try:
            yield session
        finally:
            self._sessions.pop(account_id, None)
            self._logger.debug(f"Real-time session ended for account {account_id}")

    def mark_push_active(self, account_id: int, active: bool = True) -> None:
        session = self._sessions.get(account_id)
        if session is None:
            raise KeyError(f"No real-time session registered for account {account_id}")
        session.push_active = active

    def is_active(self, account_id: int) -> bool:
        session = self._sessions.get(account_id)
        return bool(session and session.push_active)
