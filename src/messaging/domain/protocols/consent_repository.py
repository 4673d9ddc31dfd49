"""
Contact Consent Repository Protocol
"""
from abc import abstractmethod
from typing import Optional, Protocol

from messaging.domain.entities.contact_consent import ContactConsent


class ContactConsentRepository(Protocol):
    """Opt-out flags keyed by (tenant, normalized phone)."""

    @abstractmethod
    async def get(self, tenant_id: str, phone: str) -> Optional[ContactConsent]:
        ...

    @abstractmethod
    async def save(self, consent: ContactConsent) -> ContactConsent:
        ...

    @abstractmethod
    async def count_opted_out(self, tenant_id: str) -> int:
        ...
