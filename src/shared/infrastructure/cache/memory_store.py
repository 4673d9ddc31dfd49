"""
In-Memory Counter Store
Single-process implementation of ICounterStore
"""
from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any

from shared.infrastructure.cache.counter_store import ClaimResult, WindowResult
from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, now_ms, system_clock

logger = get_logger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at_ms: int | None = None
    # sorted (score, member) pairs when the entry is a sliding window
    window: list[tuple[int, str]] = field(default_factory=list)


class InMemoryCounterStore:
    """
    Dict-backed counter store.

    No method awaits while mutating, so each call is atomic with respect to
    other tasks on the same event loop. Expiry is evaluated lazily on read
    against the injected clock and eagerly by `purge_expired`.
    """

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}

    # ---------- low-level helpers ----------

    def _now(self) -> int:
        return now_ms(self._clock)

    def _live(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at_ms is not None and entry.expires_at_ms <= self._now():
            del self._data[key]
            return None
        return entry

    def _deadline(self, ttl_seconds: int | None) -> int | None:
        return None if ttl_seconds is None else self._now() + ttl_seconds * 1000

    # ---------- strings & counters ----------

    async def incr(self, key: str, amount: int = 1, ttl_seconds: int | None = None) -> int:
        entry = self._live(key)
        if entry is None:
            entry = _Entry(value=0, expires_at_ms=self._deadline(ttl_seconds))
            self._data[key] = entry
        entry.value = int(entry.value) + amount
        return entry.value

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return None if entry is None else str(entry.value)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None, nx: bool = False) -> bool:
        if nx and self._live(key) is not None:
            return False
        self._data[key] = _Entry(value=value, expires_at_ms=self._deadline(ttl_seconds))
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        entry.expires_at_ms = self._deadline(ttl_seconds)
        return True

    # ---------- hashes ----------

    def _hash(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        if entry is None or not isinstance(entry.value, dict):
            entry = _Entry(value={}, expires_at_ms=entry.expires_at_ms if entry else None)
            self._data[key] = entry
        return entry.value

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        h = self._hash(key)
        h[field] = str(int(h.get(field, "0")) + amount)
        return int(h[field])

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        self._hash(key).update({k: str(v) for k, v in mapping.items()})

    async def hgetall(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        if entry is None or not isinstance(entry.value, dict):
            return {}
        return dict(entry.value)

    # ---------- sliding window ----------

    def _pruned_window(self, key: str, window_ms: int, now: int) -> _Entry:
        entry = self._live(key)
        if entry is None:
            entry = _Entry(value=None)
            self._data[key] = entry
        cutoff = now - window_ms
        while entry.window and entry.window[0][0] <= cutoff:
            entry.window.pop(0)
        return entry

    async def window_acquire(
        self,
        key: str,
        *,
        limit: int,
        window_ms: int,
        now_ms: int,
        member: str,
    ) -> WindowResult:
        entry = self._pruned_window(key, window_ms, now_ms)
        allowed = len(entry.window) < limit
        if allowed:
            bisect.insort(entry.window, (now_ms, member))
        entry.expires_at_ms = now_ms + window_ms
        oldest = entry.window[0][0] if entry.window else 0
        return WindowResult(allowed=allowed, count=len(entry.window), oldest_ms=oldest)

    async def window_count(self, key: str, *, window_ms: int, now_ms: int) -> int:
        entry = self._live(key)
        if entry is None:
            return 0
        cutoff = now_ms - window_ms
        return sum(1 for score, _ in entry.window if score > cutoff)

    # ---------- locks ----------

    async def claim(self, key: str, *, owner: str, ttl_ms: int, now_ms: int) -> ClaimResult:
        entry = self._live(key)
        if entry is not None and isinstance(entry.value, dict):
            current = entry.value.get("owner")
            if current and current != owner:
                return ClaimResult(
                    acquired=False,
                    owner=current,
                    acquired_at_ms=int(entry.value.get("acquired_at", 0)),
                    expires_at_ms=int(entry.value.get("expires_at", 0)),
                )
            refreshed = bool(current)
            acquired_at = int(entry.value.get("acquired_at", now_ms)) if current else now_ms
        else:
            refreshed = False
            acquired_at = now_ms
        expires_at = now_ms + ttl_ms
        self._data[key] = _Entry(
            value={"owner": owner, "acquired_at": str(acquired_at), "expires_at": str(expires_at)},
            expires_at_ms=expires_at,
        )
        return ClaimResult(
            acquired=True, owner=owner, acquired_at_ms=acquired_at, expires_at_ms=expires_at, refreshed=refreshed
        )

    async def compare_and_delete(self, key: str, *, field: str, expected: str) -> bool:
        entry = self._live(key)
        if entry is None or not isinstance(entry.value, dict):
            return False
        if entry.value.get(field) != expected:
            return False
        del self._data[key]
        return True

    # ---------- maintenance ----------

    async def purge_expired(self, prefix: str = "") -> int:
        now = self._now()
        stale = [
            k for k, e in self._data.items()
            if k.startswith(prefix) and e.expires_at_ms is not None and e.expires_at_ms <= now
        ]
        for k in stale:
            del self._data[k]
        if stale:
            logger.debug("Purged expired store entries", prefix=prefix or "*", count=len(stale))
        return len(stale)

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._data)
