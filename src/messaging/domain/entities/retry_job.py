"""
Retry Job Entity
Durable, delayed re-delivery of a failed send.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional


@dataclass(frozen=True)
class RetryJob:
    """
    Attributes:
        message_id: Originating message (unique key of the job)
        retry_count: Failed retry attempts so far (0 for the first retry)
        max_retries: Attempts allowed before dead-lettering
        scheduled_at: Epoch seconds when the job becomes due
        original_timestamp: Epoch seconds of the first attempt
        dead_lettered_at: Set once the job reached its terminal state
    """
    message_id: str
    tenant_id: str
    recipient: str
    payload: dict[str, Any]
    retry_count: int
    max_retries: int
    scheduled_at: float
    original_timestamp: float
    last_error: str = ""
    last_error_code: str = ""
    campaign_id: Optional[str] = None
    message_type: str = "text"
    dead_lettered_at: Optional[float] = None
    attempts_log: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def is_dead_lettered(self) -> bool:
        return self.dead_lettered_at is not None

    def next_attempt(self, *, last_error: str, last_error_code: str, scheduled_at: float) -> "RetryJob":
        return replace(
            self,
            retry_count=self.retry_count + 1,
            last_error=last_error,
            last_error_code=last_error_code,
            scheduled_at=scheduled_at,
            attempts_log=self.attempts_log + ({"retry_count": self.retry_count, "error": last_error_code},),
        )

    def deferred(self, scheduled_at: float) -> "RetryJob":
        return replace(self, scheduled_at=scheduled_at)

    def dead_lettered(self, *, last_error: str, last_error_code: str, at: float) -> "RetryJob":
        return replace(
            self,
            retry_count=self.retry_count + 1,
            last_error=last_error,
            last_error_code=last_error_code,
            dead_lettered_at=at,
            attempts_log=self.attempts_log + ({"retry_count": self.retry_count, "error": last_error_code},),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["attempts_log"] = list(self.attempts_log)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetryJob":
        data = dict(data)
        data["attempts_log"] = tuple(data.get("attempts_log") or ())
        return cls(**data)
