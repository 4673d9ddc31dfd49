"""
Tenant Policy
Per-tenant inputs resolved at call time: plan limits, SLA and inbox settings.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from messaging.domain.value_objects.governance import PlanTier


@dataclass(frozen=True)
class PlanLimits:
    messages_per_second: int
    messages_per_day: int
    messages_per_month: int
    template_submissions_per_day: int


@dataclass(frozen=True)
class SlaSettings:
    enabled: bool = False
    first_response_minutes: int = 60
    auto_escalate: bool = False


@dataclass(frozen=True)
class InboxSettings:
    soft_lock_enabled: bool = True
    soft_lock_timeout_seconds: int = 60


@dataclass(frozen=True)
class TenantPolicy:
    """
    Attributes:
        plan: Plan tier; unknown plans are treated as free
        overrides: Single-value replacements of the plan limits,
            keyed by PlanLimits field name
    """
    tenant_id: str
    plan: PlanTier = PlanTier.FREE
    overrides: dict[str, int] = field(default_factory=dict)
    sla: SlaSettings = field(default_factory=SlaSettings)
    inbox: InboxSettings = field(default_factory=InboxSettings)
