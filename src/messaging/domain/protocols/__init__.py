"""
Dispatch Governor Domain Protocols (Repository Interfaces)
"""
from .campaign_registry import CampaignRegistry
from .channel_repository import ChannelCredentialRepository
from .consent_repository import ContactConsentRepository
from .message_repository import OutboundMessageRepository
from .retry_job_store import RetryJobStore
from .sla_repository import SlaRepository
from .tenant_policy_provider import TenantPolicyProvider
from .whatsapp_gateway_repository import WhatsAppGateway

__all__ = [
    "CampaignRegistry",
    "ChannelCredentialRepository",
    "ContactConsentRepository",
    "OutboundMessageRepository",
    "RetryJobStore",
    "SlaRepository",
    "TenantPolicyProvider",
    "WhatsAppGateway",
]
