"""Background consumer of the retry queue."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Optional

from shared.infrastructure.observability.logger import get_logger

from messaging.application.services.retry_queue import RetryQueue

if TYPE_CHECKING:
    from messaging.application.services.dispatcher import Dispatcher

logger = get_logger(__name__)


class RetryWorker:
    """
    Polls the retry queue and redelivers due jobs through the dispatcher.

    Delivery is at-least-once: a job claimed by a worker that dies is
    requeued once its visibility timeout passes.
    """

    def __init__(
        self,
        retry_queue: RetryQueue,
        dispatcher: "Dispatcher",
        *,
        interval: float = 5.0,
        batch_size: int = 20,
    ) -> None:
        self.worker_name = "retry_worker"
        self.retry_queue = retry_queue
        self.dispatcher = dispatcher
        self.interval = interval
        self.batch_size = batch_size
        self.is_running = False
        self.shutdown_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Claim and process one batch; returns the number of jobs handled."""
        jobs = await self.retry_queue.claim_due(self.batch_size)
        for job in jobs:
            try:
                result = await self.dispatcher.redeliver(job)
                logger.info(
                    "Retry processed",
                    message_id=job.message_id,
                    retry_count=job.retry_count,
                    status=result.status.value,
                )
            except Exception as e:
                # job stays claimed and is requeued after the visibility timeout
                logger.error("Retry redelivery crashed", message_id=job.message_id, error=str(e), exc_info=True)
        return len(jobs)

    async def run(self) -> None:
        """Main worker loop."""
        self.is_running = True
        logger.info(f"Worker {self.worker_name} started with interval {self.interval}s")

        while self.is_running and not self.shutdown_event.is_set():
            try:
                start_time = time.time()
                handled = await self.run_once()
                if handled:
                    logger.info(
                        f"Worker {self.worker_name} completed batch",
                        duration=time.time() - start_time,
                        jobs=handled,
                    )
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                logger.info(f"Worker {self.worker_name} cancelled")
                break
            except Exception as e:
                logger.error(f"Worker {self.worker_name} failed with error: {e}", exc_info=True)
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=min(300, self.interval * 2))
                except asyncio.TimeoutError:
                    pass

        self.is_running = False
        logger.info(f"Worker {self.worker_name} stopped")

    def start(self) -> asyncio.Task:
        self.shutdown_event.clear()
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def shutdown(self) -> None:
        """Graceful shutdown of worker."""
        self.is_running = False
        self.shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info(f"Worker {self.worker_name} shutting down")
