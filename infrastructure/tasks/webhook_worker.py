"""In-process reconciliation worker for provider webhooks.

The webhook route answers the provider immediately and hands the payload to
this worker. A bounded queue feeds a fixed number of consumer tasks.
``submit`` never waits; a full queue raises ``WorkerQueueFull``. ``stop``
drains what is queued before cancelling the consumers.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from application.dtos.payments import WebhookPayload
from core.logging_config import get_logger


logger = get_logger(__name__)

Handler = Callable[[WebhookPayload], Awaitable[object]]


class WorkerQueueFull(Exception):
    """The bounded queue has no free slot for another payload."""

    def __init__(self, pending: int) -> None:
        super().__init__(f"reconciliation queue is full ({pending} pending)")
        self.pending = pending


@dataclass
class WorkerStats:
    submitted: int = 0
    processed: int = 0
    failed: int = 0
    rejected: int = 0


class ReconciliationWorker:
    """Supervised consumer pool over a bounded ``asyncio.Queue``."""

    def __init__(
        self,
        handler: Handler,
        *,
        queue_size: int = 1000,
        concurrency: int = 4,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self._handler = handler
        self._queue: asyncio.Queue[WebhookPayload] = asyncio.Queue(maxsize=max(1, queue_size))
        self._concurrency = max(1, concurrency)
        self._shutdown_timeout = shutdown_timeout
        self._tasks: List[asyncio.Task] = []
        self._accepting = False
        self.stats = WorkerStats()

    @property
    def running(self) -> bool:
        return bool(self._tasks) and self._accepting

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._tasks:
            return
        self._accepting = True
        for i in range(self._concurrency):
            self._tasks.append(asyncio.create_task(self._consume(i), name=f"reconcile-worker-{i}"))
        logger.info("reconcile_worker_started", concurrency=self._concurrency, queue_size=self._queue.maxsize)

    async def submit(self, payload: WebhookPayload) -> None:
        """Enqueue a payload without waiting; raises ``WorkerQueueFull`` when there is no room."""
        if not self._accepting:
            raise RuntimeError("reconciliation worker is not running")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.stats.rejected += 1
            raise WorkerQueueFull(self._queue.qsize()) from None
        self.stats.submitted += 1
        logger.debug("reconcile_job_queued", order_id=payload.order_nsu, pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued payload has been handled."""
        await self._queue.join()

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, drain the queue, then cancel the consumers."""
        if not self._tasks:
            return
        self._accepting = False
        limit = self._shutdown_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(self._queue.join(), timeout=limit)
        except asyncio.TimeoutError:
            logger.error("reconcile_worker_drain_timeout", pending=self._queue.qsize(), timeout=limit)

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info(
            "reconcile_worker_stopped",
            submitted=self.stats.submitted,
            processed=self.stats.processed,
            failed=self.stats.failed,
            rejected=self.stats.rejected,
        )

    async def _consume(self, index: int) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._handler(payload)
                self.stats.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # never surfaced to the provider; the next webhook or a verify call retries
                self.stats.failed += 1
                logger.error(
                    "reconcile_job_failed",
                    worker=index,
                    order_id=payload.order_nsu,
                    error=str(exc),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
