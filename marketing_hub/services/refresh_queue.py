"""
Refresh Queue

Fire-and-forget background refreshes. The cache resolver submits a
(company, range) and returns immediately; a single worker task drains the
queue through the orchestrator's single-company refresh. Failures are
logged, never raised to the submitter.
"""
import asyncio
from datetime import date
from typing import Awaitable, Callable, Optional, Set, Tuple

from marketing_hub.utils.logger import log

RefreshKey = Tuple[str, date, date]


class RefreshQueue:

    def __init__(self, handler: Callable[[str, date, date], Awaitable[object]]):
        self.handler = handler
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[RefreshKey] = set()
        self.completed = 0
        self.failed = 0

    def _ensure_worker(self, loop: asyncio.AbstractEventLoop) -> None:
        # Queue and worker belong to one event loop; rebuild when the loop changes
        if self._loop is not loop or self._worker is None or self._worker.done():
            if self._loop is not loop:
                self._queue = asyncio.Queue()
                self._pending.clear()
                self._loop = loop
            self._worker = loop.create_task(self._run())

    def submit(self, company_id: str, start: date, end: date) -> bool:
        """
        Queue a refresh without waiting for it.

        Returns False when the same refresh is already pending or when no
        event loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning(f"[RefreshQueue] No running event loop, dropping refresh for {company_id}")
            return False

        self._ensure_worker(loop)
        key = (company_id, start, end)
        if key in self._pending:
            return False

        self._pending.add(key)
        self._queue.put_nowait(key)
        log.info(f"[RefreshQueue] Queued refresh for {company_id} {start}..{end}")
        return True

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def _run(self) -> None:
        while True:
            company_id, start, end = key = await self._queue.get()
            try:
                await self.handler(company_id, start, end)
                self.completed += 1
            except Exception as e:
                self.failed += 1
                log.error(f"[RefreshQueue] Background refresh failed for {company_id}: {e}")
            finally:
                self._pending.discard(key)
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until everything queued so far has been processed"""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def stop(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
