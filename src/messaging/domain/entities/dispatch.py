"""
Dispatch request/result
Input and outcome of a single send attempt through the dispatcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from messaging.domain.value_objects.dispatch_outcome import DispatchErrorCode, DispatchStatus, ErrorAction
from messaging.domain.value_objects.message_status import MessageType, SendOrigin


@dataclass(frozen=True)
class DispatchRequest:
    tenant_id: str
    recipient: str
    payload: dict[str, Any]
    message_type: MessageType = MessageType.TEXT
    campaign_id: Optional[str] = None
    origin: SendOrigin = SendOrigin.AGENT
    message_id: Optional[str] = None
    actor_id: Optional[str] = None
    conversation_id: Optional[str] = None


@dataclass(frozen=True)
class DispatchResult:
    """
    Per-message outcome reported to the caller.

    `reason` is the human readable string shown to an agent.
    """
    status: DispatchStatus
    message_id: str
    provider_message_id: Optional[str] = None
    error_code: Optional[DispatchErrorCode] = None
    reason: Optional[str] = None
    retry_after_seconds: Optional[int] = None
    action: Optional[ErrorAction] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == DispatchStatus.SENT
