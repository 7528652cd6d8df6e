from unittest.mock import AsyncMock

import pytest

from mailsync.controllers.imap.lifecycle import ConnectionLifecycleManager
from mailsync.controllers.imap.pool import ConnectionPool
from mailsync.exceptions import TransportError, UnhealthyConnectionError
from tests.fakes import FakeConnection, make_account


@pytest.fixture
def connections():
    return []


@pytest.fixture
def transport(connections):
    async def connect(account):
        connection = FakeConnection()
        connections.append(connection)
        return connection

    mock = AsyncMock()
    mock.connect.side_effect = connect
    return mock


@pytest.fixture
def pool(transport):
    return ConnectionPool(transport, max_age=1800)


async def test_connection_is_reused_across_leases(pool, transport, account):
    lease = pool.acquire(account)
    first = await lease.connection()
    await pool.release(lease)

    lease = pool.acquire(account)
    second = await lease.connection()

    assert first is second
    assert transport.connect.await_count == 1


async def test_one_lease_per_account(pool, account):
    pool.acquire(account)

    with pytest.raises(RuntimeError):
        pool.acquire(account)

    other = pool.acquire(make_account(id=2, email="bob@example.com"))
    assert other.account_id == 2


async def test_released_lease_cannot_be_used(pool, account):
    lease = pool.acquire(account)
    await pool.release(lease)

    with pytest.raises(RuntimeError):
        await lease.connection()
    assert not pool.is_leased(account.id)


async def test_dispose_closes_the_connection(pool, account, connections):
    lease = pool.acquire(account)
    await lease.connection()
    await pool.release(lease, dispose=True)

    assert connections[0].closed
    assert not pool.has_connection(account.id)


async def test_stale_connections_are_replaced(pool, account, connections):
    lease = pool.acquire(account)
    first = await lease.connection()
    first.age = 3600

    second = await lease.connection()

    assert second is not first
    assert first.closed
    assert len(connections) == 2


async def test_logged_out_connections_are_replaced(pool, account, connections):
    lease = pool.acquire(account)
    first = await lease.connection()
    first.state = "LOGOUT"

    assert await lease.connection() is not first


async def test_reconnect_swaps_the_connection(pool, account, connections):
    lease = pool.acquire(account)
    first = await lease.connection()

    second = await lease.reconnect()

    assert second is not first
    assert first.closed


async def test_close_all(pool, account, connections):
    lease = pool.acquire(account)
    await lease.connection()

    await pool.close_all()

    assert connections[0].closed
    assert not pool.is_leased(account.id)


async def test_healthy_connection_is_kept(pool, account, classifier, connections):
    lifecycle = ConnectionLifecycleManager(classifier)
    lease = pool.acquire(account)
    first = await lease.connection()

    assert await lifecycle.ensure_healthy(lease) is first
    assert len(connections) == 1


async def test_unhealthy_connection_is_replaced(pool, account, classifier, connections):
    lifecycle = ConnectionLifecycleManager(classifier)
    lease = pool.acquire(account)
    first = await lease.connection()
    first.noop_error = TransportError("Not authenticated")

    healthy = await lifecycle.ensure_healthy(lease)

    assert healthy is not first
    assert first.closed


async def test_unauthenticated_connection_is_unhealthy(classifier):
    lifecycle = ConnectionLifecycleManager(classifier)
    connection = FakeConnection()
    connection.is_authenticated = False

    assert not await lifecycle.is_healthy(connection)


async def test_fresh_connection_failing_health_check_raises(account, classifier):
    broken = FakeConnection()
    broken.noop_error = ConnectionResetError("reset")
    transport = AsyncMock()
    transport.connect.return_value = broken
    pool = ConnectionPool(transport, max_age=1800)
    lifecycle = ConnectionLifecycleManager(classifier)

    with pytest.raises(UnhealthyConnectionError):
        await lifecycle.ensure_healthy(pool.acquire(account))
