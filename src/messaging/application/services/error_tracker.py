"""Campaign error statistics and auto-pause decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from shared.config import Settings
from shared.infrastructure.cache.counter_store import ICounterStore
from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, system_clock, to_datetime

logger = get_logger(__name__)

# provider codes that pause on first sight when the classifier also pauses;
# otherwise they only count toward the consecutive threshold
CRITICAL_CODES = frozenset({"130429", "131056", "131047", "131048", "190"})

REASON_CONSECUTIVE = "CONSECUTIVE_ERRORS"
REASON_CRITICAL = "CRITICAL_ERROR"


@dataclass(frozen=True, slots=True)
class ErrorStats:
    campaign_id: str
    total_errors: int
    consecutive_errors: int
    errors_by_code: dict[str, int] = field(default_factory=dict)
    last_error: Optional[str] = None
    last_error_at: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AutoPauseDecision:
    should_auto_pause: bool
    reason: Optional[str] = None
    consecutive_errors: int = 0
    error_code: Optional[str] = None


class ErrorTracker:
    """
    Per-campaign error counters, independent of backoff.

    Totals and per-code counts live in a hash with a one hour TTL; the
    consecutive counter has its own short TTL and is deleted on success.
    """

    def __init__(self, store: ICounterStore, settings: Settings, clock: Clock = system_clock) -> None:
        self._store = store
        self._threshold = settings.consecutive_error_threshold
        self._stats_ttl = settings.error_stats_ttl_seconds
        self._consecutive_ttl = settings.consecutive_error_ttl_seconds
        self._clock = clock

    @staticmethod
    def _stats_key(campaign_id: str) -> str:
        return f"errors:{campaign_id}"

    @staticmethod
    def _consecutive_key(campaign_id: str) -> str:
        return f"consecutive:{campaign_id}"

    async def record_error(
        self, campaign_id: str, code: str, message: str, *, pauses_campaign: bool = False
    ) -> AutoPauseDecision:
        key = self._stats_key(campaign_id)
        await self._store.hincrby(key, "total", 1)
        await self._store.hincrby(key, f"code:{code}", 1)
        await self._store.hset(
            key,
            {"last_error": message or code, "last_error_at": to_datetime(self._clock()).isoformat()},
        )
        await self._store.expire(key, self._stats_ttl)
        consecutive = await self._store.incr(
            self._consecutive_key(campaign_id), 1, ttl_seconds=self._consecutive_ttl
        )

        if consecutive >= self._threshold:
            logger.warning(
                "Consecutive error threshold reached",
                campaign_id=campaign_id,
                consecutive_errors=consecutive,
            )
            return AutoPauseDecision(True, REASON_CONSECUTIVE, consecutive, code)
        if pauses_campaign and str(code) in CRITICAL_CODES:
            return AutoPauseDecision(True, REASON_CRITICAL, consecutive, str(code))
        return AutoPauseDecision(False, None, consecutive, code)

    async def record_success(self, campaign_id: str) -> None:
        await self._store.delete(self._consecutive_key(campaign_id))

    async def get_stats(self, campaign_id: str) -> ErrorStats:
        data = await self._store.hgetall(self._stats_key(campaign_id))
        consecutive = await self._store.get(self._consecutive_key(campaign_id))
        return ErrorStats(
            campaign_id=campaign_id,
            total_errors=int(data.get("total", 0) or 0),
            consecutive_errors=int(consecutive or 0),
            errors_by_code={k[len("code:"):]: int(v) for k, v in data.items() if k.startswith("code:")},
            last_error=data.get("last_error"),
            last_error_at=data.get("last_error_at"),
        )
