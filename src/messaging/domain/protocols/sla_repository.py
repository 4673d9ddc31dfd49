"""
SLA Repository Protocol
"""
from abc import abstractmethod
from datetime import datetime
from typing import Optional, List, Protocol

from messaging.domain.entities.sla_deadline import SlaDeadline
from messaging.domain.value_objects.governance import Priority


class SlaRepository(Protocol):
    """
    Storage of first-response deadlines.

    `mark_breached` and `record_first_response` are compare-and-set:
    each succeeds for exactly one caller per episode.
    """

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[SlaDeadline]:
        ...

    @abstractmethod
    async def save(self, record: SlaDeadline) -> SlaDeadline:
        ...

    @abstractmethod
    async def find_overdue(self, now: datetime, tenant_id: Optional[str] = None) -> List[SlaDeadline]:
        """Active, unbreached, unanswered records whose deadline passed."""
        ...

    @abstractmethod
    async def mark_breached(
        self, conversation_id: str, *, at: datetime, priority: Priority, escalated: bool
    ) -> bool:
        """Flip to breached only if not already breached and still unanswered."""
        ...

    @abstractmethod
    async def record_first_response(self, conversation_id: str, *, responder_id: str, at: datetime) -> bool:
        """Set the first response only if none is recorded for the episode."""
        ...

    @abstractmethod
    async def list_for_tenant(self, tenant_id: str) -> List[SlaDeadline]:
        ...
