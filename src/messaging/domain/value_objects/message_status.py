# src/messaging/domain/value_objects/message_status.py
"""
Message Status and Type Enums
"""
from enum import Enum


class MessageType(str, Enum):
    """WhatsApp outbound message types."""
    TEXT = "text"
    TEMPLATE = "template"
    INTERACTIVE = "interactive"  # Buttons, lists
    IMAGE = "image"
    DOCUMENT = "document"


class MessageStatus(str, Enum):
    """
    Outbound message lifecycle.

    Flow: queued → sent
    Retryable failure → retry_pending → sent | dead_lettered
    Permanent failure → failed
    """
    QUEUED = "queued"
    SENT = "sent"
    RETRY_PENDING = "retry_pending"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"
    BLOCKED = "blocked"  # never attempted (opt-out)


class SendOrigin(str, Enum):
    """Who initiated the send."""
    AGENT = "agent"
    CAMPAIGN = "campaign"
    RETRY = "retry"
