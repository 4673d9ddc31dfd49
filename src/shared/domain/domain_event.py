"""
Domain Event
Immutable, topic-addressed record of something that happened
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """
    Event published on the EventBus.

    Publishers and subscribers agree only on the topic name
    (e.g. "contact.opted_out", "sla.breached").

    Attributes:
        topic: Dotted topic name handlers subscribe to
        tenant_id: Owning tenant
        aggregate_id: Id of the conversation / contact / campaign concerned
        payload: Event specific data
        event_id: Unique identifier for this occurrence
        occurred_at: Timestamp when the event occurred
    """

    topic: str
    tenant_id: str
    aggregate_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "topic": self.topic,
            "tenant_id": self.tenant_id,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }
