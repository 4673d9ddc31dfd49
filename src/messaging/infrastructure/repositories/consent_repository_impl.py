"""In-memory contact consent repository."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Optional, Tuple

from messaging.domain.entities.contact_consent import ContactConsent


class InMemoryContactConsentRepository:
    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], ContactConsent] = {}

    async def get(self, tenant_id: str, phone: str) -> Optional[ContactConsent]:
        record = self._records.get((tenant_id, phone))
        return replace(record) if record is not None else None

    async def save(self, consent: ContactConsent) -> ContactConsent:
        self._records[(consent.tenant_id, consent.phone)] = replace(consent)
        return consent

    async def count_opted_out(self, tenant_id: str) -> int:
        return sum(1 for (tenant, _), r in self._records.items() if tenant == tenant_id and r.opted_out)
