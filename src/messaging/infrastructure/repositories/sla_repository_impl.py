"""In-memory SLA deadline repository with compare-and-set transitions."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from messaging.domain.entities.sla_deadline import SlaDeadline
from messaging.domain.value_objects.governance import Priority


class InMemorySlaRepository:
    """
    Keyed by conversation id.

    The check and the write of `mark_breached` / `record_first_response`
    happen without an intervening await, so each is atomic on the loop.
    """

    def __init__(self) -> None:
        self._records: Dict[str, SlaDeadline] = {}

    async def get(self, conversation_id: str) -> Optional[SlaDeadline]:
        record = self._records.get(conversation_id)
        return replace(record) if record is not None else None

    async def save(self, record: SlaDeadline) -> SlaDeadline:
        self._records[record.conversation_id] = replace(record)
        return record

    async def find_overdue(self, now: datetime, tenant_id: Optional[str] = None) -> List[SlaDeadline]:
        return [
            replace(r)
            for r in self._records.values()
            if r.is_overdue(now) and (tenant_id is None or r.tenant_id == tenant_id)
        ]

    async def mark_breached(
        self, conversation_id: str, *, at: datetime, priority: Priority, escalated: bool
    ) -> bool:
        record = self._records.get(conversation_id)
        if record is None or record.breached or not record.awaiting_response:
            return False
        record.breached = True
        record.breached_at = at
        record.priority = priority
        if escalated:
            record.escalated_at = at
        return True

    async def record_first_response(self, conversation_id: str, *, responder_id: str, at: datetime) -> bool:
        record = self._records.get(conversation_id)
        if record is None or record.first_response_at is not None:
            return False
        record.first_response_at = at
        record.responder_id = responder_id
        record.deadline = None
        return True

    async def list_for_tenant(self, tenant_id: str) -> List[SlaDeadline]:
        return [replace(r) for r in self._records.values() if r.tenant_id == tenant_id]
