"""
Contact Consent
Opt-out flag on a recipient record, scoped by tenant.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from messaging.domain.value_objects.governance import ConsentSource


@dataclass
class ContactConsent:
    tenant_id: str
    phone: str
    opted_out: bool = False
    opted_out_at: Optional[datetime] = None
    opted_out_source: Optional[ConsentSource] = None
    opt_out_reason: Optional[str] = None
    opted_in_at: Optional[datetime] = None
    opted_in_source: Optional[ConsentSource] = None

    def opt_out(self, source: ConsentSource, reason: Optional[str], at: datetime) -> None:
        self.opted_out = True
        self.opted_out_at = at
        self.opted_out_source = source
        self.opt_out_reason = reason

    def opt_in(self, source: ConsentSource, at: datetime) -> None:
        self.opted_out = False
        self.opted_in_at = at
        self.opted_in_source = source
