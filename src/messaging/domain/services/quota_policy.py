# src/messaging/domain/services/quota_policy.py
"""Plan tier limits and calendar quota buckets."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timedelta, timezone

from ..entities.tenant_policy import PlanLimits, TenantPolicy
from ..value_objects.governance import PlanTier

PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        messages_per_second=1,
        messages_per_day=100,
        messages_per_month=1_000,
        template_submissions_per_day=3,
    ),
    PlanTier.BASIC: PlanLimits(
        messages_per_second=10,
        messages_per_day=1_000,
        messages_per_month=25_000,
        template_submissions_per_day=10,
    ),
    PlanTier.PREMIUM: PlanLimits(
        messages_per_second=50,
        messages_per_day=10_000,
        messages_per_month=250_000,
        template_submissions_per_day=50,
    ),
    PlanTier.ENTERPRISE: PlanLimits(
        messages_per_second=200,
        messages_per_day=100_000,
        messages_per_month=2_500_000,
        template_submissions_per_day=200,
    ),
}

DAILY_WARNING_PERCENT = 90
MONTHLY_WARNING_PERCENT = 80

_LIMIT_FIELDS = {f.name for f in fields(PlanLimits)}


def resolve_limits(policy: TenantPolicy) -> PlanLimits:
    """
    Plan limits with tenant overrides applied.

    Unknown override keys are ignored; a non-positive override is ignored too.
    """
    base = PLAN_LIMITS.get(policy.plan, PLAN_LIMITS[PlanTier.FREE])
    overrides = {k: int(v) for k, v in policy.overrides.items() if k in _LIMIT_FIELDS and int(v) > 0}
    return replace(base, **overrides) if overrides else base


@dataclass(frozen=True, slots=True)
class QuotaBucket:
    """Calendar bucket a usage counter belongs to."""
    key: str
    seconds_until_reset: int


def daily_bucket(now: datetime) -> QuotaBucket:
    """UTC day bucket; resets at midnight UTC."""
    now = now.astimezone(timezone.utc)
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return QuotaBucket(now.strftime("%Y-%m-%d"), max(1, int((tomorrow - now).total_seconds())))


def monthly_bucket(now: datetime) -> QuotaBucket:
    """UTC month bucket; resets on the first of the next month."""
    now = now.astimezone(timezone.utc)
    if now.month == 12:
        first_next = now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        first_next = now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return QuotaBucket(now.strftime("%Y-%m"), max(1, int((first_next - now).total_seconds())))


def usage_percent(used: int, limit: int) -> int:
    if limit <= 0:
        return 100
    return int(round(used * 100 / limit))
