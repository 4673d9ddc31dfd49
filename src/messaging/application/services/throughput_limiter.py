"""Three-level throughput limiter with plan quotas."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional
from uuid import uuid4

from shared.config import Settings
from shared.infrastructure.cache.counter_store import ICounterStore
from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, now_ms, system_clock, to_datetime

from messaging.domain.entities.tenant_policy import PlanLimits
from messaging.domain.protocols.tenant_policy_provider import TenantPolicyProvider
from messaging.domain.services.quota_policy import (
    DAILY_WARNING_PERCENT,
    MONTHLY_WARNING_PERCENT,
    daily_bucket,
    monthly_bucket,
    resolve_limits,
    usage_percent,
)
from messaging.domain.value_objects.dispatch_outcome import LimitKind, LimitLevel

logger = get_logger(__name__)

KEY_PREFIX = "rl"


@dataclass(frozen=True, slots=True)
class LimitCheck:
    """Outcome of a throughput or quota check."""
    allowed: bool
    remaining: int
    retry_after_seconds: int
    level: Optional[LimitLevel] = None
    kind: Optional[LimitKind] = None
    limit: int = 0

    @property
    def reason(self) -> str:
        if self.allowed:
            return "allowed"
        return f"{self.level.value if self.level else 'unknown'} {self.kind.value if self.kind else ''} limit reached".strip()


_ALLOWED = LimitCheck(allowed=True, remaining=0, retry_after_seconds=0)


@dataclass(frozen=True, slots=True)
class QuotaReservation:
    """One unit taken from the daily and monthly buckets, returned on release."""
    tenant_id: str
    day_key: str
    day_ttl: int
    month_key: str
    month_ttl: int


class ThroughputLimiter:
    """
    Enforces global, tenant and channel budgets.

    Each budget is two constraints evaluated in order: a per-second counter
    (INCR on a one-second bucket) and a trailing sliding window (an ordered
    set pruned by score). The first failing constraint short-circuits with
    its level, kind and a suggested retry-after.

    The sliding window only records admitted sends, so the number of
    entries inside any trailing window never exceeds its limit, even
    under concurrent callers.
    """

    def __init__(
        self,
        store: ICounterStore,
        policies: TenantPolicyProvider,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._policies = policies
        self._settings = settings
        self._clock = clock

    # ---------- limits ----------

    async def _limits_for(self, level: LimitLevel, identifier: str) -> tuple[int, int]:
        """(per_second, per_window) for a level."""
        s = self._settings
        if level == LimitLevel.GLOBAL:
            return s.global_limit_per_second, s.global_limit_per_minute
        if level == LimitLevel.TENANT:
            plan = await self.plan_limits(identifier)
            return plan.messages_per_second, s.tenant_limit_per_minute
        return s.channel_limit_per_second, s.channel_limit_per_minute

    async def plan_limits(self, tenant_id: str) -> PlanLimits:
        return resolve_limits(await self._policies.get_policy(tenant_id))

    # ---------- per-level checks ----------

    async def _check_second(self, level: LimitLevel, identifier: str, limit: int, now: int) -> LimitCheck:
        second = now // 1000
        count = await self._store.incr(f"{KEY_PREFIX}:{level.value}:{identifier}:sec:{second}", 1, ttl_seconds=2)
        if count > limit:
            return LimitCheck(False, 0, 1, level, LimitKind.PER_SECOND, limit)
        return LimitCheck(True, limit - count, 0, level, LimitKind.PER_SECOND, limit)

    async def _check_window(self, level: LimitLevel, identifier: str, limit: int, now: int) -> LimitCheck:
        window_ms = self._settings.rate_window_seconds * 1000
        result = await self._store.window_acquire(
            f"{KEY_PREFIX}:{level.value}:{identifier}:win",
            limit=limit,
            window_ms=window_ms,
            now_ms=now,
            member=f"{now}:{uuid4().hex[:12]}",
        )
        if result.allowed:
            return LimitCheck(True, max(0, limit - result.count), 0, level, LimitKind.PER_MINUTE, limit)
        retry_after = max(1, math.ceil((result.oldest_ms + window_ms - now) / 1000))
        return LimitCheck(False, 0, retry_after, level, LimitKind.PER_MINUTE, limit)

    async def check_limit(self, level: LimitLevel, identifier: str) -> LimitCheck:
        """
        Check and consume one unit of a single level's budget.

        Args:
            level: global, tenant or channel
            identifier: "*" for global, tenant id, or channel id

        Returns:
            LimitCheck; `remaining` is the tighter of the two constraints
        """
        per_second, per_window = await self._limits_for(level, identifier)
        now = now_ms(self._clock)
        second = await self._check_second(level, identifier, per_second, now)
        if not second.allowed:
            return second
        window = await self._check_window(level, identifier, per_window, now)
        if not window.allowed:
            return window
        return LimitCheck(True, min(second.remaining, window.remaining), 0, level, None, per_second)

    async def check_all(self, tenant_id: str, channel_id: Optional[str]) -> LimitCheck:
        """All three levels must pass; the first failure short-circuits."""
        targets = [(LimitLevel.GLOBAL, "*"), (LimitLevel.TENANT, tenant_id)]
        if channel_id:
            targets.append((LimitLevel.CHANNEL, channel_id))
        last = _ALLOWED
        for level, identifier in targets:
            last = await self.check_limit(level, identifier)
            if not last.allowed:
                logger.info(
                    "Throughput limit reached",
                    tenant_id=tenant_id,
                    level=level.value,
                    kind=last.kind.value if last.kind else None,
                    retry_after_seconds=last.retry_after_seconds,
                )
                return last
        return last

    # ---------- calendar quotas ----------

    def _quota_keys(self, tenant_id: str) -> tuple[str, int, str, int]:
        now = to_datetime(self._clock())
        day, month = daily_bucket(now), monthly_bucket(now)
        return (
            f"quota:{tenant_id}:day:{day.key}",
            day.seconds_until_reset,
            f"quota:{tenant_id}:month:{month.key}",
            month.seconds_until_reset,
        )

    async def _read_int(self, key: str) -> int:
        raw = await self._store.get(key)
        return int(raw) if raw else 0

    async def reserve_quota(self, tenant_id: str) -> tuple[LimitCheck, Optional[QuotaReservation]]:
        """
        Take one unit of the daily and monthly message quota.

        Each bucket is a single INCR compared against the plan limit, so
        concurrent sends can never push usage past it. A refused bucket
        gives its unit back before returning.

        Returns:
            (check, reservation); the reservation is None when refused and
            must be passed to `release_quota` if the send does not go out
        """
        plan = await self.plan_limits(tenant_id)
        day_key, day_reset, month_key, month_reset = self._quota_keys(tenant_id)
        day_ttl, month_ttl = day_reset + 3600, month_reset + 86400

        used_day = await self._store.incr(day_key, 1, ttl_seconds=day_ttl)
        if used_day > plan.messages_per_day:
            await self._store.incr(day_key, -1, ttl_seconds=day_ttl)
            return LimitCheck(False, 0, day_reset, LimitLevel.TENANT, LimitKind.DAILY, plan.messages_per_day), None

        used_month = await self._store.incr(month_key, 1, ttl_seconds=month_ttl)
        if used_month > plan.messages_per_month:
            await self._store.incr(month_key, -1, ttl_seconds=month_ttl)
            await self._store.incr(day_key, -1, ttl_seconds=day_ttl)
            return (
                LimitCheck(False, 0, month_reset, LimitLevel.TENANT, LimitKind.MONTHLY, plan.messages_per_month),
                None,
            )

        check = LimitCheck(
            True,
            min(plan.messages_per_day - used_day, plan.messages_per_month - used_month),
            0,
            LimitLevel.TENANT,
            None,
            plan.messages_per_day,
        )
        return check, QuotaReservation(tenant_id, day_key, day_ttl, month_key, month_ttl)

    async def release_quota(self, reservation: QuotaReservation) -> None:
        """Give back a reserved unit for a send that never reached the provider."""
        await self._store.incr(reservation.day_key, -1, ttl_seconds=reservation.day_ttl)
        await self._store.incr(reservation.month_key, -1, ttl_seconds=reservation.month_ttl)

    async def check_template_submission(self, tenant_id: str) -> LimitCheck:
        """Consume one daily template submission."""
        plan = await self.plan_limits(tenant_id)
        now = to_datetime(self._clock())
        day = daily_bucket(now)
        limit = plan.template_submissions_per_day
        count = await self._store.incr(
            f"quota:{tenant_id}:tpl:{day.key}", 1, ttl_seconds=day.seconds_until_reset + 3600
        )
        if count > limit:
            return LimitCheck(False, 0, day.seconds_until_reset, LimitLevel.TENANT, LimitKind.TEMPLATE_DAILY, limit)
        return LimitCheck(True, limit - count, 0, LimitLevel.TENANT, LimitKind.TEMPLATE_DAILY, limit)

    async def quota_status(self, tenant_id: str) -> dict[str, Any]:
        policy = await self._policies.get_policy(tenant_id)
        plan = resolve_limits(policy)
        day_key, _, month_key, _ = self._quota_keys(tenant_id)
        now = to_datetime(self._clock())
        used_day = await self._read_int(day_key)
        used_month = await self._read_int(month_key)
        used_tpl = await self._read_int(f"quota:{tenant_id}:tpl:{daily_bucket(now).key}")

        daily_pct = usage_percent(used_day, plan.messages_per_day)
        monthly_pct = usage_percent(used_month, plan.messages_per_month)
        warnings: list[str] = []
        if daily_pct >= DAILY_WARNING_PERCENT:
            warnings.append(f"Daily message quota at {daily_pct}%")
        if monthly_pct >= MONTHLY_WARNING_PERCENT:
            warnings.append(f"Monthly message quota at {monthly_pct}%")

        return {
            "tenant_id": tenant_id,
            "plan": policy.plan.value,
            "limits": {
                "messages_per_second": plan.messages_per_second,
                "messages_per_day": plan.messages_per_day,
                "messages_per_month": plan.messages_per_month,
                "template_submissions_per_day": plan.template_submissions_per_day,
            },
            "usage": {
                "messages_today": used_day,
                "messages_this_month": used_month,
                "template_submissions_today": used_tpl,
            },
            "percentages": {"daily": daily_pct, "monthly": monthly_pct},
            "warnings": warnings,
        }

    # ---------- maintenance ----------

    async def cleanup(self) -> int:
        """Drop expired counters and windows (no-op on stores with native expiry)."""
        removed = await self._store.purge_expired(f"{KEY_PREFIX}:")
        removed += await self._store.purge_expired("quota:")
        return removed
