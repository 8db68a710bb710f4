"""
Background Queue
================
Ordered, single-worker asyncio queue for fire-and-forget work.

Used for:
    - Write-behind persistence of durable cache entries
    - Outbound notifications (webhooks, reputation feedback)

Semantics:
    - submit() never blocks and never raises; the job runs later on the
      event loop, in submission order.
    - A failing job is logged and dropped. Nothing propagates back to the
      request that queued it.
    - drain() waits until every queued job has finished (tests, shutdown).
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class BackgroundQueue:
    """
    Ordered fire-and-forget job runner.

    Usage:
        queue = BackgroundQueue("notify")
        queue.submit("ping webhook", lambda: client.post(url, json=payload))
        await queue.drain()
        await queue.close()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.failures = 0
        self.completed = 0

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            # a queue is bound to the loop its worker runs on
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name=f"background:{self.name}"
            )

    def start(self) -> None:
        """Start the worker on the running loop (idempotent)."""
        self._ensure_worker()

    def submit(self, label: str, job: Job) -> bool:
        """
        Queue a job for background execution.

        Returns
        -------
        bool
            False if no event loop is running and the job was dropped.
        """
        try:
            self._ensure_worker()
        except RuntimeError:
            logger.error("[%s] No running event loop, dropped job: %s", self.name, label)
            return False
        self._queue.put_nowait((label, job))
        return True

    async def _run(self) -> None:
        while True:
            label, job = await self._queue.get()
            try:
                await job()
                self.completed += 1
            except Exception as e:
                self.failures += 1
                logger.warning("[%s] Background job failed (%s): %s", self.name, label, e)
            finally:
                self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()

    async def close(self) -> None:
        """Drain outstanding jobs, then stop the worker."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._queue = None
