import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable

from mailsync.controllers.sync.models import CycleResult
from mailsync.controllers.sync.orchestrator import AccountOrchestrator
from mailsync.db import database_context

logger = logging.getLogger(__name__)


class SyncWorker:
    """Periodic driver: runs one sync cycle, waits ``interval`` seconds, repeats.

    Nothing happens until ``start()`` is called; ``stop()`` lets the current cycle finish
    and ends the loop.
    """

    def __init__(
        self,
        orchestrator: AccountOrchestrator,
        interval: float,
        session_scope: Callable[[], AbstractAsyncContextManager[None]] = database_context,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval = interval
        self._session_scope = session_scope
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.cycles_run = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        if self.is_running:
            raise RuntimeError("Sync worker already running")
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="sync-worker")
        logger.info(f"Sync worker started, interval {self._interval}s")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        logger.info("Sync worker stopping")
        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sync worker stopped")

    async def run_once(self) -> CycleResult | None:
        """Run exactly one cycle in its own session scope. Cycle-level errors are logged, not raised."""
        try:
            async with self._session_scope():
                return await self._orchestrator.run_cycle()
        except Exception:
            logger.exception("Sync cycle failed")
            return None
        finally:
            self.cycles_run += 1

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
