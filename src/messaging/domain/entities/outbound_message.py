"""
Outbound Message Entity
Represents one attempted outbound send and its delivery bookkeeping.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from messaging.domain.value_objects.message_status import MessageStatus, MessageType, SendOrigin


@dataclass
class OutboundMessage:
    """
    Entity for an outbound WhatsApp message.

    Attributes:
        id: Message id (also the retry job key)
        tenant_id: Owning tenant
        recipient: Normalized recipient phone digits
        payload: Provider message body (text / template / interactive)
        campaign_id: Owning campaign, None for agent sends
        status: queued, sent, retry_pending, failed, dead_lettered, blocked
        provider_message_id: Provider id after a successful send
        retry_count: Retry attempts consumed
    """
    id: str
    tenant_id: str
    recipient: str
    payload: dict[str, Any]
    created_at: datetime
    message_type: MessageType = MessageType.TEXT
    origin: SendOrigin = SendOrigin.AGENT
    campaign_id: Optional[str] = None
    channel_id: Optional[str] = None
    status: MessageStatus = MessageStatus.QUEUED
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    sent_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    history: list[dict[str, Any]] = field(default_factory=list)

    def _transition(self, status: MessageStatus, at: datetime, **info: Any) -> None:
        self.status = status
        self.updated_at = at
        self.history.append({"status": status.value, "at": at.isoformat(), **info})

    def mark_sent(self, provider_message_id: str, at: datetime, retry_count: Optional[int] = None) -> None:
        """Mark message as successfully sent."""
        self.provider_message_id = provider_message_id
        self.sent_at = at
        self.error_code = None
        self.error_message = None
        if retry_count is not None:
            self.retry_count = retry_count
        self._transition(MessageStatus.SENT, at, retry_count=self.retry_count)

    def mark_retry_pending(self, error_code: str, error_message: str, retry_count: int, at: datetime) -> None:
        self.error_code = error_code
        self.error_message = error_message
        self.retry_count = retry_count
        self._transition(MessageStatus.RETRY_PENDING, at, error_code=error_code, retry_count=retry_count)

    def mark_failed(self, error_code: str, error_message: str, at: datetime) -> None:
        """Terminal failure; never retried."""
        self.error_code = error_code
        self.error_message = error_message
        self._transition(MessageStatus.FAILED, at, error_code=error_code)

    def mark_dead_lettered(self, error_message: str, retry_count: int, at: datetime) -> None:
        self.error_code = "RETRY_EXHAUSTED"
        self.error_message = error_message
        self.retry_count = retry_count
        self._transition(MessageStatus.DEAD_LETTERED, at, retry_count=retry_count)

    def mark_blocked(self, at: datetime) -> None:
        self.error_code = "COMPLIANCE_BLOCKED"
        self._transition(MessageStatus.BLOCKED, at)

    @property
    def is_terminal(self) -> bool:
        return self.status in (MessageStatus.SENT, MessageStatus.FAILED, MessageStatus.DEAD_LETTERED, MessageStatus.BLOCKED)
