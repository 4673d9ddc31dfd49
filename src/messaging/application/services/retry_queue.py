"""Durable delayed retry of failed sends, with a dead-letter terminal state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from shared.config import Settings
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger
from shared.utils.clock import Clock, system_clock

from messaging.domain.entities.outbound_message import OutboundMessage
from messaging.domain.entities.retry_job import RetryJob
from messaging.domain.exceptions import DeadLetterNotFoundError
from messaging.domain.protocols.retry_job_store import RetryJobStore

logger = get_logger(__name__)


class RetryOutcome(str, Enum):
    REQUEUED = "requeued"
    DEAD_LETTERED = "dead_lettered"


@dataclass(frozen=True, slots=True)
class FailureResult:
    outcome: RetryOutcome
    job: RetryJob


class RetryQueue:
    """
    Retry scheduling policy on top of a RetryJobStore.

    The delay for a job is `delays[min(retry_count, len(delays) - 1)]`.
    A job processed with retry_count n that fails again is dead-lettered
    when n + 1 >= max_retries, otherwise re-enqueued with n + 1.
    Dead letters are never retried automatically.

    Every transition writes an audit record carrying message id, tenant id,
    attempt count and error detail.
    """

    def __init__(
        self,
        store: RetryJobStore,
        audit: AuditLogger,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._audit = audit
        self._delays = tuple(settings.retry_delays_seconds)
        self.max_retries = settings.retry_max_retries
        self._batch_size = settings.retry_batch_size
        self._visibility_timeout = settings.retry_visibility_timeout_seconds
        self._clock = clock

    def delay_for(self, retry_count: int) -> int:
        """Schedule delay in seconds, clamped to the last entry."""
        return self._delays[min(max(retry_count, 0), len(self._delays) - 1)]

    def _audit_job(self, action: str, job: RetryJob, *, status: str = "success", **extra: Any) -> None:
        self._audit.emit(
            tenant_id=job.tenant_id,
            action=action,
            entity_type="message",
            entity_id=job.message_id,
            status=status,
            details={
                "retry_count": job.retry_count,
                "max_retries": job.max_retries,
                "error_code": job.last_error_code or None,
                "error": job.last_error or None,
                "campaign_id": job.campaign_id,
                **extra,
            },
        )

    # ---------- producer side ----------

    async def enqueue_retry(
        self,
        message: OutboundMessage,
        *,
        last_error: str,
        error_code: str,
        retry_count: int = 0,
    ) -> RetryJob:
        now = self._clock()
        job = RetryJob(
            message_id=message.id,
            tenant_id=message.tenant_id,
            recipient=message.recipient,
            payload=message.payload,
            retry_count=retry_count,
            max_retries=self.max_retries,
            scheduled_at=now + self.delay_for(retry_count),
            original_timestamp=message.created_at.timestamp(),
            last_error=last_error,
            last_error_code=error_code,
            campaign_id=message.campaign_id,
            message_type=message.message_type.value,
        )
        await self._store.schedule(job)
        logger.info(
            "Retry enqueued",
            message_id=job.message_id,
            tenant_id=job.tenant_id,
            retry_count=retry_count,
            delay_seconds=self.delay_for(retry_count),
        )
        self._audit_job("retry.enqueued", job, delay_seconds=self.delay_for(retry_count))
        return job

    # ---------- consumer side ----------

    async def claim_due(self, limit: Optional[int] = None) -> list[RetryJob]:
        return await self._store.claim_due(self._clock(), limit or self._batch_size, self._visibility_timeout)

    async def on_success(self, job: RetryJob) -> int:
        """Ack a delivered job; returns the number of retries it took."""
        await self._store.ack(job.message_id)
        attempts = job.retry_count + 1
        logger.info("Retry succeeded", message_id=job.message_id, tenant_id=job.tenant_id, retry_count=attempts)
        self._audit_job("retry.succeeded", job, attempts=attempts, retry_count=attempts)
        return attempts

    async def on_failure(self, job: RetryJob, *, last_error: str, error_code: str) -> FailureResult:
        now = self._clock()
        if job.retry_count + 1 >= job.max_retries:
            dead = job.dead_lettered(last_error=last_error, last_error_code=error_code, at=now)
            await self._store.dead_letter(dead)
            await self._store.ack(job.message_id)
            logger.error(
                "Retries exhausted, moved to dead letter",
                message_id=job.message_id,
                tenant_id=job.tenant_id,
                retry_count=dead.retry_count,
                error_code=error_code,
            )
            self._audit_job("retry.exhausted", dead, status="failure", attempts=dead.retry_count)
            return FailureResult(RetryOutcome.DEAD_LETTERED, dead)

        next_count = job.retry_count + 1
        nxt = job.next_attempt(
            last_error=last_error,
            last_error_code=error_code,
            scheduled_at=now + self.delay_for(next_count),
        )
        await self._store.schedule(nxt)
        await self._store.ack(job.message_id)
        logger.info(
            "Retry re-enqueued",
            message_id=job.message_id,
            retry_count=next_count,
            delay_seconds=self.delay_for(next_count),
        )
        self._audit_job("retry.enqueued", nxt, status="failure", delay_seconds=self.delay_for(next_count))
        return FailureResult(RetryOutcome.REQUEUED, nxt)

    async def defer(self, job: RetryJob, delay_seconds: int) -> RetryJob:
        """Re-schedule a throttled job without consuming an attempt."""
        deferred = job.deferred(self._clock() + max(1, int(delay_seconds)))
        await self._store.schedule(deferred)
        await self._store.ack(job.message_id)
        logger.info("Retry deferred", message_id=job.message_id, delay_seconds=delay_seconds)
        return deferred

    async def abort(self, job: RetryJob, *, last_error: str, error_code: str) -> None:
        """Drop a job that hit a non-retryable failure; it is not dead-lettered."""
        await self._store.ack(job.message_id)
        logger.warning("Retry aborted", message_id=job.message_id, error_code=error_code)
        self._audit_job("retry.aborted", job, status="failure", error_code=error_code, error=last_error)

    async def requeue_stale(self) -> int:
        count = await self._store.requeue_stale(self._clock())
        if count:
            logger.warning("Requeued stale retry claims", count=count)
        return count

    # ---------- operator side ----------

    async def list_dead_letters(self, tenant_id: Optional[str] = None) -> list[RetryJob]:
        return await self._store.list_dead_letters(tenant_id)

    async def resend_dead_letter(self, message_id: str, actor_id: Optional[str] = None) -> RetryJob:
        """Manual resend: a fresh job with retry_count 0, due immediately."""
        dead = await self._store.get_dead_letter(message_id)
        if dead is None:
            raise DeadLetterNotFoundError(f"No dead letter for message {message_id}")
        fresh = RetryJob(
            message_id=dead.message_id,
            tenant_id=dead.tenant_id,
            recipient=dead.recipient,
            payload=dead.payload,
            retry_count=0,
            max_retries=self.max_retries,
            scheduled_at=self._clock(),
            original_timestamp=dead.original_timestamp,
            last_error=dead.last_error,
            last_error_code=dead.last_error_code,
            campaign_id=dead.campaign_id,
            message_type=dead.message_type,
        )
        await self._store.schedule(fresh)
        await self._store.remove_dead_letter(message_id)
        self._audit.emit(
            tenant_id=dead.tenant_id,
            action="retry.manual_resend",
            entity_type="message",
            entity_id=message_id,
            actor_id=actor_id,
            details={"previous_retry_count": dead.retry_count},
        )
        return fresh

    async def stats(self) -> dict[str, Any]:
        counts = await self._store.counts()
        return {
            **counts,
            "max_retries": self.max_retries,
            "delays_seconds": list(self._delays),
        }
