"""
Redis Counter Store
Shared, multi-instance implementation of ICounterStore
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import NoScriptError, RedisError

from shared.exceptions import StoreUnavailableError
from shared.infrastructure.cache.counter_store import ClaimResult, WindowResult
from shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def create_redis_client(url: str) -> Redis:
    """Build an async client; from_url is sync, do NOT await it."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
        socket_connect_timeout=5.0,
        socket_timeout=5.0,
        retry_on_timeout=True,
        max_connections=100,
    )


class RedisCounterStore:
    """
    Redis-backed counter store.

    Multi-step primitives (sliding window, claim, compare-and-delete,
    increment-with-expiry) run as Lua scripts so each call is one atomic
    round trip. Expiry is native, so `purge_expired` has nothing to do.
    """

    _INCR_LUA = """
    -- KEYS[1] = counter key
    -- ARGV[1] = amount, ARGV[2] = ttl seconds (0 = none)
    local v = redis.call('INCRBY', KEYS[1], tonumber(ARGV[1]))
    if tonumber(ARGV[2]) > 0 and redis.call('TTL', KEYS[1]) == -1 then
      redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
    end
    return v
    """

    _WINDOW_LUA = """
    -- KEYS[1] = window zset
    -- ARGV[1] = now ms, ARGV[2] = window ms, ARGV[3] = limit, ARGV[4] = member
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', now - window)
    local count = redis.call('ZCARD', KEYS[1])
    local allowed = 0
    if count < tonumber(ARGV[3]) then
      redis.call('ZADD', KEYS[1], now, ARGV[4])
      count = count + 1
      allowed = 1
    end
    redis.call('PEXPIRE', KEYS[1], window)
    local oldest = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
    local oldest_ms = 0
    if oldest[2] then
      oldest_ms = tonumber(oldest[2])
    end
    return {allowed, count, oldest_ms}
    """

    _CLAIM_LUA = """
    -- KEYS[1] = lock hash
    -- ARGV[1] = owner, ARGV[2] = ttl ms, ARGV[3] = now ms
    local cur = redis.call('HGET', KEYS[1], 'owner')
    if cur and cur ~= ARGV[1] then
      return {0, cur, redis.call('HGET', KEYS[1], 'acquired_at'), redis.call('HGET', KEYS[1], 'expires_at'), 0}
    end
    local acquired_at = ARGV[3]
    local refreshed = 0
    if cur then
      acquired_at = redis.call('HGET', KEYS[1], 'acquired_at')
      refreshed = 1
    end
    local expires_at = tonumber(ARGV[3]) + tonumber(ARGV[2])
    redis.call('HSET', KEYS[1], 'owner', ARGV[1], 'acquired_at', acquired_at, 'expires_at', tostring(expires_at))
    redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[2]))
    return {1, ARGV[1], acquired_at, tostring(expires_at), refreshed}
    """

    _CAD_LUA = """
    -- KEYS[1] = hash key
    -- ARGV[1] = field, ARGV[2] = expected value
    if redis.call('HGET', KEYS[1], ARGV[1]) == ARGV[2] then
      return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(self, client: Redis, namespace: str = "dispatch") -> None:
        self.redis = client
        self._ns = namespace.strip(":")
        self._shas: dict[str, str] = {}

    # ---------- low-level helpers ----------

    def _k(self, key: str) -> str:
        return f"{self._ns}:{key}"

    async def _guard(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await fn()
        except RedisError as e:
            logger.error("Redis command failed", error=str(e))
            raise StoreUnavailableError(f"Redis error: {e}") from e

    async def _script(self, source: str, key: str, *args: Any) -> Any:
        async def _run():
            sha = self._shas.get(source)
            if sha is None:
                sha = await self.redis.script_load(source)
                self._shas[source] = sha
            try:
                return await self.redis.evalsha(sha, 1, self._k(key), *args)
            except NoScriptError:
                # script cache flushed on the server
                self._shas.pop(source, None)
                return await self.redis.eval(source, 1, self._k(key), *args)
        return await self._guard(_run)

    # ---------- strings & counters ----------

    async def incr(self, key: str, amount: int = 1, ttl_seconds: Optional[int] = None) -> int:
        return int(await self._script(self._INCR_LUA, key, amount, ttl_seconds or 0))

    async def get(self, key: str) -> Optional[str]:
        return await self._guard(lambda: self.redis.get(self._k(key)))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None, nx: bool = False) -> bool:
        result = await self._guard(lambda: self.redis.set(self._k(key), value, ex=ttl_seconds, nx=nx))
        return bool(result)

    async def delete(self, key: str) -> bool:
        return await self._guard(lambda: self.redis.delete(self._k(key))) > 0

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._guard(lambda: self.redis.expire(self._k(key), ttl_seconds)))

    # ---------- hashes ----------

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return int(await self._guard(lambda: self.redis.hincrby(self._k(key), field, amount)))

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        await self._guard(lambda: self.redis.hset(self._k(key), mapping={k: str(v) for k, v in mapping.items()}))

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._guard(lambda: self.redis.hgetall(self._k(key))) or {})

    # ---------- sliding window ----------

    async def window_acquire(
        self,
        key: str,
        *,
        limit: int,
        window_ms: int,
        now_ms: int,
        member: str,
    ) -> WindowResult:
        allowed, count, oldest = await self._script(self._WINDOW_LUA, key, now_ms, window_ms, limit, member)
        return WindowResult(allowed=bool(allowed), count=int(count), oldest_ms=int(oldest))

    async def window_count(self, key: str, *, window_ms: int, now_ms: int) -> int:
        return int(
            await self._guard(lambda: self.redis.zcount(self._k(key), f"({now_ms - window_ms}", "+inf"))
        )

    # ---------- locks ----------

    async def claim(self, key: str, *, owner: str, ttl_ms: int, now_ms: int) -> ClaimResult:
        acquired, holder, acquired_at, expires_at, refreshed = await self._script(
            self._CLAIM_LUA, key, owner, ttl_ms, now_ms
        )
        return ClaimResult(
            acquired=bool(acquired),
            owner=str(holder),
            acquired_at_ms=int(acquired_at or 0),
            expires_at_ms=int(expires_at or 0),
            refreshed=bool(refreshed),
        )

    async def compare_and_delete(self, key: str, *, field: str, expected: str) -> bool:
        return int(await self._script(self._CAD_LUA, key, field, expected)) == 1

    # ---------- maintenance ----------

    async def purge_expired(self, prefix: str = "") -> int:
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
