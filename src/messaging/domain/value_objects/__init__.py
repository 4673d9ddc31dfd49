from messaging.domain.value_objects.dispatch_outcome import (
    DispatchErrorCode,
    DispatchStatus,
    ErrorAction,
    LimitKind,
    LimitLevel,
)
from messaging.domain.value_objects.governance import CampaignStatus, ConsentSource, PlanTier, Priority
from messaging.domain.value_objects.message_status import MessageStatus, MessageType, SendOrigin
from messaging.domain.value_objects.phone_number import normalize_phone

__all__ = [
    "DispatchErrorCode",
    "DispatchStatus",
    "ErrorAction",
    "LimitKind",
    "LimitLevel",
    "CampaignStatus",
    "ConsentSource",
    "PlanTier",
    "Priority",
    "MessageStatus",
    "MessageType",
    "SendOrigin",
    "normalize_phone",
]
