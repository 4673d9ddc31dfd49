"""Periodic maintenance sweeps for the dispatch governor."""

from __future__ import annotations

from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from shared.config import Settings
from shared.infrastructure.observability.logger import get_logger

from messaging.application.services.reply_lock_service import ReplyLockService
from messaging.application.services.retry_queue import RetryQueue
from messaging.application.services.sla_service import SlaService
from messaging.application.services.throughput_limiter import ThroughputLimiter

logger = get_logger(__name__)


class SweepScheduler:
    """
    Owns the interval jobs that clear expired state.

    Every sweep only removes entries that are already expired or overdue,
    so it is safe to run alongside in-flight dispatch work. A failing sweep
    is logged and retried on the next tick.
    """

    def __init__(
        self,
        *,
        reply_locks: ReplyLockService,
        sla: SlaService,
        limiter: ThroughputLimiter,
        retry_queue: RetryQueue,
        settings: Settings,
    ) -> None:
        self.reply_locks = reply_locks
        self.sla = sla
        self.limiter = limiter
        self.retry_queue = retry_queue
        self.settings = settings
        self.scheduler = AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def _add(self, job_id: str, name: str, func: Callable[[], Awaitable[object]], seconds: float) -> None:
        self.scheduler.add_job(
            func,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        """Start the scheduler; must be called from inside a running event loop."""
        logger.info("Starting sweep scheduler...")
        s = self.settings
        self._add("reply_lock_sweep", "Clear expired reply locks", self.sweep_locks, s.lock_sweep_interval_seconds)
        self._add("sla_breach_sweep", "Flag breached first-response SLAs", self.sweep_sla, s.sla_sweep_interval_seconds)
        self._add(
            "rate_limit_cleanup",
            "Drop expired rate-limit counters",
            self.cleanup_limits,
            s.rate_limit_cleanup_interval_seconds,
        )
        self._add(
            "retry_requeue_stale",
            "Requeue retry jobs whose claim expired",
            self.requeue_stale_retries,
            s.retry_visibility_timeout_seconds,
        )
        self.scheduler.start()
        logger.info("Sweep scheduler started", jobs=[job.id for job in self.scheduler.get_jobs()])

    def shutdown(self) -> None:
        if not self.scheduler.running:
            return
        logger.info("Stopping sweep scheduler...")
        self.scheduler.shutdown(wait=False)
        logger.info("Sweep scheduler stopped")

    # ---------- jobs ----------

    async def sweep_locks(self) -> int:
        try:
            return await self.reply_locks.sweep_expired()
        except Exception as e:
            logger.error("Reply lock sweep failed", error=str(e), exc_info=True)
            return 0

    async def sweep_sla(self) -> list[str]:
        try:
            return await self.sla.sweep_breaches()
        except Exception as e:
            logger.error("SLA breach sweep failed", error=str(e), exc_info=True)
            return []

    async def cleanup_limits(self) -> int:
        try:
            return await self.limiter.cleanup()
        except Exception as e:
            logger.error("Rate limit cleanup failed", error=str(e), exc_info=True)
            return 0

    async def requeue_stale_retries(self) -> int:
        try:
            return await self.retry_queue.requeue_stale()
        except Exception as e:
            logger.error("Retry requeue failed", error=str(e), exc_info=True)
            return 0
