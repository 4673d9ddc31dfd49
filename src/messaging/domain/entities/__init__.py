"""
Dispatch Governor Domain Entities
"""
from .campaign import CampaignState
from .channel import ChannelCredential
from .contact_consent import ContactConsent
from .dispatch import DispatchRequest, DispatchResult
from .outbound_message import OutboundMessage
from .reply_lock import AdvisoryLock, LockAcquisition, LockStatus
from .retry_job import RetryJob
from .sla_deadline import SlaDeadline
from .tenant_policy import InboxSettings, PlanLimits, SlaSettings, TenantPolicy

__all__ = [
    "AdvisoryLock",
    "CampaignState",
    "ChannelCredential",
    "ContactConsent",
    "DispatchRequest",
    "DispatchResult",
    "InboxSettings",
    "LockAcquisition",
    "LockStatus",
    "OutboundMessage",
    "PlanLimits",
    "RetryJob",
    "SlaDeadline",
    "SlaSettings",
    "TenantPolicy",
]
