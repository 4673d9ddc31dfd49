"""
Retry Queue API Schemas
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from messaging.domain.entities.retry_job import RetryJob


class DeadLetterResponse(BaseModel):
    message_id: str
    tenant_id: str
    recipient: str
    retry_count: int
    max_retries: int
    last_error: str
    last_error_code: str
    campaign_id: Optional[str] = None
    dead_lettered_at: Optional[float] = None
    original_timestamp: float
    attempts_log: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_job(cls, job: RetryJob) -> "DeadLetterResponse":
        return cls(
            message_id=job.message_id,
            tenant_id=job.tenant_id,
            recipient=job.recipient,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            last_error=job.last_error,
            last_error_code=job.last_error_code,
            campaign_id=job.campaign_id,
            dead_lettered_at=job.dead_lettered_at,
            original_timestamp=job.original_timestamp,
            attempts_log=list(job.attempts_log),
        )


class ResendResponse(BaseModel):
    message_id: str
    retry_count: int
    scheduled_at: float


class RetryStatsResponse(BaseModel):
    pending: int
    processing: int
    dead_lettered: int
    max_retries: int
    delays_seconds: list[int]
