"""
Message API Schemas
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from messaging.domain.entities.dispatch import DispatchResult
from messaging.domain.value_objects.message_status import MessageType


class SendMessageRequest(BaseModel):
    """Single agent send."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1, description="Tenant id")
    recipient: str = Field(..., min_length=6, description="Recipient phone (E.164)")
    message_type: MessageType = Field(MessageType.TEXT, description="Provider message type")
    payload: dict[str, Any] = Field(..., description="Type specific message body")
    conversation_id: Optional[str] = Field(None, description="Conversation the reply belongs to")
    campaign_id: Optional[str] = Field(None, description="Owning campaign, if any")


class DispatchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    message_id: str
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    reason: Optional[str] = None
    retry_after_seconds: Optional[int] = None
    action: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: DispatchResult) -> "DispatchResponse":
        return cls(
            status=result.status.value,
            message_id=result.message_id,
            provider_message_id=result.provider_message_id,
            error_code=result.error_code.value if result.error_code else None,
            reason=result.reason,
            retry_after_seconds=result.retry_after_seconds,
            action=result.action.value if result.action else None,
            details=result.details,
        )


class InboundMessageRequest(BaseModel):
    """Inbound customer message, as relayed by the webhook layer."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1)
    conversation_id: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=6, description="Sender phone (E.164)")
    body: str = Field("", description="Text body")


class InboundMessageResponse(BaseModel):
    consent_action: Optional[str] = None
    sla_deadline: Optional[str] = None


class TemplateSubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1)
    template: dict[str, Any] = Field(..., description="Provider template definition")


class ConsentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=6)
    reason: Optional[str] = Field(None, max_length=200)


class ConsentResponse(BaseModel):
    tenant_id: str
    phone: str
    opted_out: bool
