"""Dispatch queues for campaign sending.

Enqueuing a campaign hands the dispatch to a DispatchQueue and returns
immediately. Two implementations:

- AsyncioDispatchQueue: bounded in-process queue drained by one worker task
- CeleryDispatchQueue: submits the campaigns.dispatch task to the worker

Both run at most one dispatch per campaign at a time.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DispatchHandler = Callable[[int, str], Awaitable[Any]]

DISPATCH_TASK_NAME = "campaigns.dispatch"


class DispatchQueueFull(Exception):
    """Raised when the in-process queue cannot take another campaign."""


class DispatchQueue(Protocol):
    """Accepts campaign dispatch jobs without waiting for them."""

    def submit(self, campaign_id: int, tenant_id: str) -> bool:
        """Queue a dispatch. Returns False if one is already waiting to run."""
        ...


class AsyncioDispatchQueue:
    """Bounded asyncio queue consumed by a single worker task.

    Must be used from within a running event loop. The worker starts on the
    first submit (or an explicit start()) and logs handler failures with a
    traceback instead of letting them vanish.

    A campaign waiting in the queue is never queued twice. A campaign
    submitted while its dispatch is running is dispatched again as soon as
    that run finishes, so recipients added mid-run are picked up.
    """

    def __init__(self, handler: DispatchHandler, maxsize: int = 100):
        self.handler = handler
        self._queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue(maxsize=maxsize)
        self._queued: set[int] = set()
        self._running: set[int] = set()
        self._rerun: set[int] = set()
        self._worker: Optional[asyncio.Task] = None

    @property
    def active_campaigns(self) -> frozenset[int]:
        """Campaign ids queued or being dispatched."""
        return frozenset(self._queued | self._running)

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="campaign-dispatch-worker"
            )

    def submit(self, campaign_id: int, tenant_id: str) -> bool:
        """Queue a campaign for dispatch.

        Returns False when the campaign is already waiting in the queue.

        Raises:
            DispatchQueueFull: If the queue is at capacity.
        """
        if campaign_id in self._queued:
            logger.info(f"Campaign {campaign_id} already queued for dispatch")
            return False

        if campaign_id in self._running:
            logger.info(f"Campaign {campaign_id} is dispatching, will run again when done")
            self._rerun.add(campaign_id)
            return True

        self.start()
        try:
            self._queue.put_nowait((campaign_id, tenant_id))
        except asyncio.QueueFull:
            raise DispatchQueueFull(
                f"Dispatch queue full ({self._queue.maxsize}), campaign {campaign_id} not queued"
            )

        self._queued.add(campaign_id)
        return True

    async def _dispatch(self, campaign_id: int, tenant_id: str) -> None:
        try:
            await self.handler(campaign_id, tenant_id)
        except Exception:
            logger.exception(f"Dispatch of campaign {campaign_id} failed")

    async def _run(self) -> None:
        while True:
            campaign_id, tenant_id = await self._queue.get()
            self._queued.discard(campaign_id)
            self._running.add(campaign_id)
            try:
                await self._dispatch(campaign_id, tenant_id)
                while campaign_id in self._rerun:
                    self._rerun.discard(campaign_id)
                    await self._dispatch(campaign_id, tenant_id)
            finally:
                self._running.discard(campaign_id)
                self._rerun.discard(campaign_id)
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued dispatch has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the worker task. Queued dispatches that have not started are dropped."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None


class CeleryDispatchQueue:
    """Submits dispatches to the Celery worker.

    The campaigns queue is consumed by a worker running with concurrency 1,
    so dispatches never overlap. A duplicate task for a finished campaign
    finds no pending recipients and sends nothing.
    """

    def __init__(self, app, queue: str = "campaigns"):
        self.app = app
        self.queue = queue

    def submit(self, campaign_id: int, tenant_id: str) -> bool:
        result = self.app.send_task(
            DISPATCH_TASK_NAME,
            args=[campaign_id, tenant_id],
            queue=self.queue,
        )
        logger.info(f"Submitted dispatch of campaign {campaign_id} (task {result.id})")
        return True
