import asyncio
import logging

from mailsync.controllers.imap.connection import ImapConnection, ImapTransport
from mailsync.models import Account


class ConnectionLease:
    """Account-scoped handle on the pooled connection.

    The underlying connection may be replaced while the lease is held (after a failed
    health check or an authentication error), so callers ask the lease for the current
    connection instead of holding on to one.
    """

    def __init__(self, pool: "ConnectionPool", account: Account) -> None:
        self._pool = pool
        self.account = account
        self.account_id = account.id
        self.released = False

    async def connection(self) -> ImapConnection:
        if self.released:
            raise RuntimeError(f"Lease for account {self.account_id} was already released")
        return await self._pool.get_or_connect(self.account)

    async def reconnect(self) -> ImapConnection:
        await self._pool.evict(self.account_id)
        return await self.connection()


class ConnectionPool:
    """Holds at most one IMAP connection per account and hands them out through leases.

    Connections survive across sync cycles. A connection older than ``max_age`` seconds or
    whose protocol state is ``LOGOUT`` is closed instead of being reused.
    """

    def __init__(self, transport: ImapTransport, max_age: float) -> None:
        self._logger = logging.getLogger(__name__)
        self._transport = transport
        self._max_age = max_age
        self._connections: dict[int, ImapConnection] = {}
        self._leases: dict[int, ConnectionLease] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, account_id: int) -> asyncio.Lock:
        if account_id not in self._locks:
            self._locks[account_id] = asyncio.Lock()
        return self._locks[account_id]

    def is_leased(self, account_id: int) -> bool:
        return account_id in self._leases

    def has_connection(self, account_id: int) -> bool:
        return account_id in self._connections

    def acquire(self, account: Account) -> ConnectionLease:
        if account.id in self._leases:
            raise RuntimeError(f"Connection for {account.email} is already leased")
        lease = ConnectionLease(self, account)
        self._leases[account.id] = lease
        return lease

    async def release(self, lease: ConnectionLease, dispose: bool = False) -> None:
        """Return a lease. With ``dispose`` the connection is closed rather than kept for reuse."""
        if lease.released:
            return
        lease.released = True
        if self._leases.get(lease.account_id) is lease:
            del self._leases[lease.account_id]
        if dispose:
            await self.evict(lease.account_id)

    async def get_or_connect(self, account: Account) -> ImapConnection:
        async with self._lock_for(account.id):
            connection = self._connections.get(account.id)
            if connection is not None and self._is_stale(connection):
                self._logger.info(f"Discarding stale connection for {account.email} (state: {connection.state})")
                del self._connections[account.id]
                await connection.close()
                connection = None

            if connection is None:
                connection = await self._transport.connect(account)
                self._connections[account.id] = connection
            return connection

    async def evict(self, account_id: int) -> None:
        connection = self._connections.pop(account_id, None)
        if connection is not None:
            await connection.close()

    async def close_all(self) -> None:
        account_ids = list(self._connections)
        for account_id in account_ids:
            await self.evict(account_id)
        self._leases.clear()
        self._logger.info(f"Closed {len(account_ids)} pooled IMAP connections")

    def _is_stale(self, connection: ImapConnection) -> bool:
        return connection.state == "LOGOUT" or connection.age > self._max_age
