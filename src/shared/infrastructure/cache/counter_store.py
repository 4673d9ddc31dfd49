"""
Counter Store Protocol (Abstract Interface)
Contract for the shared counter / lock store used by the dispatch governor
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class WindowResult:
    """Outcome of a sliding-window admission attempt."""
    allowed: bool
    count: int
    oldest_ms: int


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of an owner-scoped claim on a lock key."""
    acquired: bool
    owner: str
    acquired_at_ms: int
    expires_at_ms: int
    # true when the owner already held the key and only the expiry moved
    refreshed: bool = False


class ICounterStore(Protocol):
    """
    Shared counter / lock store interface.

    Every method is a single atomic read-modify-write. The in-memory
    implementation is only valid for single-process deployments; a
    multi-instance deployment must use a shared store (Redis).
    Keys are logical; implementations apply their own namespace.
    """

    async def incr(self, key: str, amount: int = 1, ttl_seconds: int | None = None) -> int:
        """
        Increment a counter, creating it at zero if missing.

        Args:
            key: Counter key
            amount: Amount to add
            ttl_seconds: Expiry applied only when the counter is created

        Returns:
            Value after the increment
        """
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None, nx: bool = False) -> bool:
        """
        Set a string value.

        Args:
            key: Key
            value: String value
            ttl_seconds: Optional expiry
            nx: Only set when the key does not exist

        Returns:
            True if the value was written
        """
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        ...

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        ...

    async def hgetall(self, key: str) -> dict[str, str]:
        ...

    async def window_acquire(
        self,
        key: str,
        *,
        limit: int,
        window_ms: int,
        now_ms: int,
        member: str,
    ) -> WindowResult:
        """
        Sliding-window admission.

        Prunes entries older than the trailing window, counts what is left and
        adds `member` (scored `now_ms`) only when the count is below `limit`.
        The stored set therefore never holds more than `limit` live entries.

        Returns:
            WindowResult with the post-call count and the oldest live score
        """
        ...

    async def window_count(self, key: str, *, window_ms: int, now_ms: int) -> int:
        ...

    async def claim(self, key: str, *, owner: str, ttl_ms: int, now_ms: int) -> ClaimResult:
        """
        Claim a lock key for `owner`.

        Succeeds when the key is free, expired, or already held by `owner`
        (which refreshes the expiry). Otherwise reports the live holder.
        """
        ...

    async def compare_and_delete(self, key: str, *, field: str, expected: str) -> bool:
        """Delete a hash key only if `field` currently equals `expected`."""
        ...

    async def purge_expired(self, prefix: str = "") -> int:
        """
        Remove expired entries under `prefix`.

        Returns:
            Number of removed entries (0 for stores with native expiry)
        """
        ...

    async def ping(self) -> bool:
        ...
