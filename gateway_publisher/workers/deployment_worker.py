# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Deployment Worker Pool - runs publish/unpublish jobs and config reloads.

Submit calls only write the pending DeploymentRecord; the vendor calls
happen here, on a bounded asyncio.Queue consumed by a fixed number of
worker tasks.

Pipeline: PublishService.submit_* -> queue -> worker -> GatewayCapability -> DeploymentRecord
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..config import settings
from ..errors import PublisherError, PublisherErrorCode

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class DeploymentWorkerPool:
    """
    Fixed-size pool of worker tasks consuming an in-process job queue.

    With ``inline=True`` a submitted job runs to completion inside
    ``submit`` (tests, single-shot scripts).
    """

    def __init__(
        self,
        concurrency: Optional[int] = None,
        queue_size: Optional[int] = None,
        inline: bool = False,
        reconcile: Optional[Job] = None,
        reconcile_interval_seconds: Optional[int] = None,
    ):
        self._concurrency = concurrency or settings.WORKER_CONCURRENCY
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size or settings.WORKER_QUEUE_SIZE)
        self._inline = inline
        self._reconcile = reconcile
        self._reconcile_interval = (
            reconcile_interval_seconds
            if reconcile_interval_seconds is not None
            else settings.RECONCILE_INTERVAL_SECONDS
        )
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def inline(self) -> bool:
        return self._inline

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def set_reconcile(self, reconcile: Job) -> None:
        """Attach the periodic stuck-record sweep (wired after the services exist)."""
        self._reconcile = reconcile

    async def start(self):
        """Start the worker tasks and the periodic reconcile loop"""
        if self._running or self._inline:
            return
        logger.info(f"Starting Deployment Worker Pool with {self._concurrency} workers...")
        self._running = True
        for index in range(self._concurrency):
            self._tasks.append(asyncio.create_task(self._worker_loop(index), name=f"deployment-worker-{index}"))
        if self._reconcile is not None and self._reconcile_interval > 0:
            self._tasks.append(asyncio.create_task(self._reconcile_loop(), name="deployment-reconcile"))
        logger.info("Deployment Worker Pool started")

    async def stop(self):
        """Stop the worker tasks; jobs still queued are dropped"""
        if not self._running:
            return
        logger.info("Stopping Deployment Worker Pool...")
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} queued deployment jobs on shutdown")
        logger.info("Deployment Worker Pool stopped")

    def check_available(self) -> None:
        """Raise WORKER_UNAVAILABLE when a new job could not be queued."""
        if not self._inline and self._queue.full():
            raise PublisherError(
                f"Deployment queue is full ({self._queue.maxsize} jobs pending)",
                code=PublisherErrorCode.WORKER_UNAVAILABLE,
                details={"queue_size": self._queue.maxsize},
            )

    async def submit(self, job: Job, name: str = "job") -> None:
        """Queue a job, or run it now in inline mode.

        Raises:
            PublisherError: WORKER_UNAVAILABLE when the queue is full
        """
        if self._inline:
            await self._run(job, name)
            return
        self.check_available()
        self._queue.put_nowait((name, job))
        logger.debug(f"Queued {name} ({self._queue.qsize()} pending)")

    async def join(self) -> None:
        """Wait until every queued job has been processed"""
        await self._queue.join()

    async def _run(self, job: Job, name: str) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Jobs record their own failures; anything reaching here is a bug
            logger.error(f"Unhandled error in {name}: {e}", exc_info=True)

    async def _worker_loop(self, index: int):
        """Main consume loop of one worker"""
        while self._running:
            name, job = await self._queue.get()
            try:
                logger.debug(f"Worker {index} running {name}")
                await self._run(job, name)
            finally:
                self._queue.task_done()

    async def _reconcile_loop(self):
        while self._running:
            await asyncio.sleep(self._reconcile_interval)
            await self._run(self._reconcile, "reconcile-stale-records")
