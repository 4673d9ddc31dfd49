"""
SLA Deadline Entity
First-response obligation for one unanswered inbound episode.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from messaging.domain.value_objects.governance import Priority


@dataclass
class SlaDeadline:
    """
    Attributes:
        deadline: When the first response is due; None once answered
        breached: Flipped exactly once by the breach sweep
        first_response_at: Set by the first outbound reply of the episode
    """
    conversation_id: str
    tenant_id: str
    started_at: datetime
    deadline: Optional[datetime]
    priority: Priority = Priority.NORMAL
    breached: bool = False
    breached_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    responder_id: Optional[str] = None

    @property
    def awaiting_response(self) -> bool:
        return self.first_response_at is None

    @property
    def active(self) -> bool:
        return self.deadline is not None and self.awaiting_response and not self.breached

    def is_overdue(self, now: datetime) -> bool:
        return self.active and self.deadline is not None and self.deadline < now

    def is_at_risk(self, now: datetime, horizon: datetime) -> bool:
        return self.active and self.deadline is not None and now < self.deadline < horizon
