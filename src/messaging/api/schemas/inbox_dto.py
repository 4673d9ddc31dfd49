"""
Inbox API Schemas (reply lock, SLA)
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReplyLockRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1)
    holder_id: str = Field(..., min_length=1, description="Agent composing the reply")


class ReplyLockAcquireResponse(BaseModel):
    acquired: bool
    current_holder: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class ReplyLockStatusResponse(BaseModel):
    locked: bool
    holder_id: Optional[str] = None
    acquired_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    remaining_seconds: int = 0


class ReplyLockReleaseResponse(BaseModel):
    released: bool


class SlaBreachResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: str
    tenant_id: str
    started_at: datetime
    deadline: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    priority: str
    first_response_at: Optional[datetime] = None


class SlaStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    awaiting_response: int
    active_sla: int
    breached: int
    at_risk: int
