import logging

from mailsync.controllers.imap.connection import ImapConnection
from mailsync.controllers.imap.errors import ErrorClassifier, ErrorKind
from mailsync.controllers.imap.pool import ConnectionLease
from mailsync.exceptions import UnhealthyConnectionError


class ConnectionLifecycleManager:
    """Keeps the pooled connection for a lease usable."""

    def __init__(self, classifier: ErrorClassifier) -> None:
        self._logger = logging.getLogger(__name__)
        self._classifier = classifier

    async def is_healthy(self, connection: ImapConnection) -> bool:
        """Healthy means authenticated and a NOOP round trip succeeds."""
        if not connection.is_authenticated:
            return False
        try:
            await connection.noop()
        except Exception as e:
            kind = self._classifier.classify(e)
            if kind is ErrorKind.authentication:
                self._logger.warning(f"Connection lost its authentication: {e}")
            else:
                self._logger.warning(f"Connection health check failed ({kind.value}): {e}")
            return False
        return True

    async def ensure_healthy(self, lease: ConnectionLease) -> ImapConnection:
        connection = await lease.connection()
        if await self.is_healthy(connection):
            return connection

        self._logger.info(f"Replacing unhealthy connection for {lease.account.email}")
        connection = await lease.reconnect()
        if await self.is_healthy(connection):
            return connection

        raise UnhealthyConnectionError(
            f"Fresh connection for {lease.account.email} failed its health check", account_id=lease.account_id
        )

    async def reconnect(self, lease: ConnectionLease) -> ImapConnection:
        self._logger.info(f"Reconnecting {lease.account.email}")
        return await lease.reconnect()
