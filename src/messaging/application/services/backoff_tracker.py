"""Per-campaign exponential backoff state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shared.config import Settings
from shared.infrastructure.cache.counter_store import ICounterStore
from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, now_ms, system_clock, to_datetime

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BackoffState:
    campaign_id: str
    attempts: int
    backoff_ms: int
    next_retry_at: Optional[datetime]
    last_error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class WaitDecision:
    should_wait: bool
    wait_ms: int = 0
    attempts: int = 0


class BackoffTracker:
    """
    Exponential backoff per campaign.

    Only the attempt counter is mutated (a single atomic HINCRBY); the
    delay and next retry time are derived on read from the attempt count
    and the last failure time, so concurrent failures cannot lose an update.
    State expires after `backoff_ttl_seconds` and is wiped on success.
    """

    def __init__(self, store: ICounterStore, settings: Settings, clock: Clock = system_clock) -> None:
        self._store = store
        self._initial_ms = settings.backoff_initial_ms
        self._max_ms = settings.backoff_max_ms
        self._multiplier = settings.backoff_multiplier
        self._ttl = settings.backoff_ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(campaign_id: str) -> str:
        return f"backoff:{campaign_id}"

    def delay_for(self, attempts: int) -> int:
        """min(initial * multiplier^(attempts-1), max); 0 when no attempts."""
        if attempts <= 0:
            return 0
        delay = self._initial_ms * (self._multiplier ** (attempts - 1))
        return int(min(delay, self._max_ms))

    async def record_failure(self, campaign_id: str, code: str, message: str) -> BackoffState:
        key = self._key(campaign_id)
        now = now_ms(self._clock)
        attempts = await self._store.hincrby(key, "attempts", 1)
        await self._store.hset(
            key,
            {"last_failure_ms": str(now), "last_error": message or code, "last_error_code": code},
        )
        await self._store.expire(key, self._ttl)

        backoff_ms = self.delay_for(attempts)
        logger.info(
            "Backoff recorded",
            campaign_id=campaign_id,
            attempts=attempts,
            backoff_ms=backoff_ms,
            error_code=code,
        )
        return BackoffState(
            campaign_id=campaign_id,
            attempts=attempts,
            backoff_ms=backoff_ms,
            next_retry_at=to_datetime((now + backoff_ms) / 1000),
            last_error=message or code,
        )

    async def get_state(self, campaign_id: str) -> BackoffState:
        data = await self._store.hgetall(self._key(campaign_id))
        attempts = int(data.get("attempts", 0) or 0)
        if attempts <= 0:
            return BackoffState(campaign_id=campaign_id, attempts=0, backoff_ms=0, next_retry_at=None)
        backoff_ms = self.delay_for(attempts)
        last_failure = int(data.get("last_failure_ms", 0) or 0)
        return BackoffState(
            campaign_id=campaign_id,
            attempts=attempts,
            backoff_ms=backoff_ms,
            next_retry_at=to_datetime((last_failure + backoff_ms) / 1000),
            last_error=data.get("last_error"),
        )

    async def should_wait(self, campaign_id: str) -> WaitDecision:
        state = await self.get_state(campaign_id)
        if state.next_retry_at is None:
            return WaitDecision(should_wait=False)
        wait_ms = int(state.next_retry_at.timestamp() * 1000) - now_ms(self._clock)
        if wait_ms > 0:
            return WaitDecision(should_wait=True, wait_ms=wait_ms, attempts=state.attempts)
        return WaitDecision(should_wait=False, attempts=state.attempts)

    async def clear(self, campaign_id: str) -> None:
        await self._store.delete(self._key(campaign_id))
