"""
Retry Job Store Protocol
Durable delayed-job facility used by the retry queue.
"""
from abc import abstractmethod
from typing import Optional, List, Protocol

from messaging.domain.entities.retry_job import RetryJob


class RetryJobStore(Protocol):
    """
    Enqueue-with-delay, dequeue-when-due, at-least-once delivery.

    A claimed job stays invisible until acked or until its visibility
    timeout lapses, after which `requeue_stale` makes it due again.
    """

    @abstractmethod
    async def schedule(self, job: RetryJob) -> None:
        """Insert or replace the pending job for `job.message_id`."""
        ...

    @abstractmethod
    async def claim_due(self, now: float, limit: int, visibility_timeout: float) -> List[RetryJob]:
        ...

    @abstractmethod
    async def ack(self, message_id: str) -> None:
        """Remove a claimed job (delivered, rescheduled or dead-lettered)."""
        ...

    @abstractmethod
    async def requeue_stale(self, now: float) -> int:
        ...

    @abstractmethod
    async def dead_letter(self, job: RetryJob) -> None:
        ...

    @abstractmethod
    async def get_dead_letter(self, message_id: str) -> Optional[RetryJob]:
        ...

    @abstractmethod
    async def list_dead_letters(self, tenant_id: Optional[str] = None) -> List[RetryJob]:
        ...

    @abstractmethod
    async def remove_dead_letter(self, message_id: str) -> bool:
        ...

    @abstractmethod
    async def get_pending(self, message_id: str) -> Optional[RetryJob]:
        ...

    @abstractmethod
    async def counts(self) -> dict:
        """{"pending": n, "processing": n, "dead_letter": n}"""
        ...
