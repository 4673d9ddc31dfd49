"""In-memory durable-job facility for the retry queue (single process)."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from messaging.domain.entities.retry_job import RetryJob


class InMemoryRetryJobStore:
    """
    Pending jobs keyed by message id, a processing map with claim
    deadlines, and a dead-letter map. Does not survive a restart; use
    RedisRetryJobStore where jobs must.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, RetryJob] = {}
        self._processing: Dict[str, Tuple[RetryJob, float]] = {}
        self._dead: Dict[str, RetryJob] = {}

    async def schedule(self, job: RetryJob) -> None:
        self._pending[job.message_id] = job

    async def claim_due(self, now: float, limit: int, visibility_timeout: float) -> List[RetryJob]:
        due = sorted(
            (j for j in self._pending.values() if j.scheduled_at <= now),
            key=lambda j: j.scheduled_at,
        )[:limit]
        for job in due:
            del self._pending[job.message_id]
            self._processing[job.message_id] = (job, now + visibility_timeout)
        return due

    async def ack(self, message_id: str) -> None:
        self._processing.pop(message_id, None)

    async def requeue_stale(self, now: float) -> int:
        stale = [mid for mid, (_, until) in self._processing.items() if until <= now]
        for message_id in stale:
            job, _ = self._processing.pop(message_id)
            self._pending.setdefault(message_id, replace(job, scheduled_at=now))
        return len(stale)

    async def dead_letter(self, job: RetryJob) -> None:
        self._dead[job.message_id] = job

    async def get_dead_letter(self, message_id: str) -> Optional[RetryJob]:
        return self._dead.get(message_id)

    async def list_dead_letters(self, tenant_id: Optional[str] = None) -> List[RetryJob]:
        jobs = [j for j in self._dead.values() if tenant_id is None or j.tenant_id == tenant_id]
        return sorted(jobs, key=lambda j: j.dead_lettered_at or 0.0)

    async def remove_dead_letter(self, message_id: str) -> bool:
        return self._dead.pop(message_id, None) is not None

    async def get_pending(self, message_id: str) -> Optional[RetryJob]:
        return self._pending.get(message_id)

    async def counts(self) -> dict:
        return {
            "pending": len(self._pending),
            "processing": len(self._processing),
            "dead_lettered": len(self._dead),
        }
