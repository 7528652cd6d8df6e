import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from mailsync.controllers.sync.models import CycleResult
from workers.sync_worker import SyncWorker


class ScopeRecorder:
    def __init__(self) -> None:
        self.entered = 0
        self.exited = 0

    @asynccontextmanager
    async def __call__(self):
        self.entered += 1
        try:
            yield
        finally:
            self.exited += 1


@pytest.fixture
def orchestrator():
    mock = AsyncMock()
    mock.run_cycle.return_value = CycleResult()
    return mock


@pytest.fixture
def scope():
    return ScopeRecorder()


async def wait_for_cycles(worker: SyncWorker, count: int) -> None:
    for _ in range(200):
        if worker.cycles_run >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"worker ran {worker.cycles_run} cycles, expected {count}")


async def test_nothing_runs_before_start(orchestrator, scope):
    worker = SyncWorker(orchestrator, interval=0.01, session_scope=scope)
    await asyncio.sleep(0.05)

    assert not worker.is_running
    orchestrator.run_cycle.assert_not_awaited()


async def test_run_once_uses_a_session_scope(orchestrator, scope):
    worker = SyncWorker(orchestrator, interval=60, session_scope=scope)

    result = await worker.run_once()

    assert isinstance(result, CycleResult)
    assert (scope.entered, scope.exited) == (1, 1)
    assert worker.cycles_run == 1


async def test_cycle_errors_do_not_escape(orchestrator, scope):
    orchestrator.run_cycle.side_effect = RuntimeError("database unavailable")
    worker = SyncWorker(orchestrator, interval=60, session_scope=scope)

    assert await worker.run_once() is None
    assert scope.exited == 1


async def test_runs_cycles_until_stopped(orchestrator, scope):
    worker = SyncWorker(orchestrator, interval=0.01, session_scope=scope)

    worker.start()
    await wait_for_cycles(worker, 3)
    await worker.stop()

    assert not worker.is_running
    ran = orchestrator.run_cycle.await_count
    await asyncio.sleep(0.05)
    assert orchestrator.run_cycle.await_count == ran


async def test_keeps_running_after_a_failed_cycle(orchestrator, scope):
    orchestrator.run_cycle.side_effect = [RuntimeError("boom"), CycleResult(), CycleResult()]
    worker = SyncWorker(orchestrator, interval=0.01, session_scope=scope)

    worker.start()
    await wait_for_cycles(worker, 2)
    await worker.stop()

    assert orchestrator.run_cycle.await_count >= 2


async def test_stop_interrupts_the_wait(orchestrator, scope):
    worker = SyncWorker(orchestrator, interval=3600, session_scope=scope)

    worker.start()
    await wait_for_cycles(worker, 1)
    await asyncio.wait_for(worker.stop(), timeout=1)

    assert worker.cycles_run == 1


async def test_cannot_start_twice(orchestrator, scope):
    worker = SyncWorker(orchestrator, interval=3600, session_scope=scope)
    worker.start()
    try:
        with pytest.raises(RuntimeError):
            worker.start()
    finally:
        await worker.stop()
