"""
Redis Retry Job Store
Durable delayed jobs: due-time sorted set, processing set with visibility timeout
"""

from __future__ import annotations

from typing import Any, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.exceptions import StoreUnavailableError
from shared.infrastructure.observability.logger import get_logger
from shared.utils.serialization import dumps, loads

from messaging.domain.entities.retry_job import RetryJob

logger = get_logger(__name__)


class RedisRetryJobStore:
    """
    Keys (under the namespace):
        retry:jobs        hash message_id -> job JSON
        retry:pending     zset message_id scored by scheduled_at
        retry:processing  zset message_id scored by claim deadline
        retry:dead        hash message_id -> dead-lettered job JSON

    Claiming moves a member from pending to processing in one script, so
    two workers never claim the same job; a claim that is never acked is
    moved back by `requeue_stale` (at-least-once delivery).
    """

    _CLAIM_LUA = """
    -- KEYS: pending, processing, jobs
    -- ARGV: now, limit, visibility timeout
    local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
    local out = {}
    for _, id in ipairs(ids) do
      redis.call('ZREM', KEYS[1], id)
      redis.call('ZADD', KEYS[2], tonumber(ARGV[1]) + tonumber(ARGV[3]), id)
      local body = redis.call('HGET', KEYS[3], id)
      if body then
        table.insert(out, body)
      end
    end
    return out
    """

    _ACK_LUA = """
    -- KEYS: processing, pending, jobs
    redis.call('ZREM', KEYS[1], ARGV[1])
    if not redis.call('ZSCORE', KEYS[2], ARGV[1]) then
      redis.call('HDEL', KEYS[3], ARGV[1])
    end
    return 1
    """

    _REQUEUE_LUA = """
    -- KEYS: processing, pending
    local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
    for _, id in ipairs(ids) do
      redis.call('ZREM', KEYS[1], id)
      redis.call('ZADD', KEYS[2], 'NX', tonumber(ARGV[1]), id)
    end
    return #ids
    """

    def __init__(self, client: Redis, namespace: str = "dispatch") -> None:
        self.redis = client
        ns = namespace.strip(":")
        self._jobs = f"{ns}:retry:jobs"
        self._pending = f"{ns}:retry:pending"
        self._processing = f"{ns}:retry:processing"
        self._dead = f"{ns}:retry:dead"

    async def _guard(self, coro: Any) -> Any:
        try:
            return await coro
        except RedisError as e:
            logger.error("Retry store command failed", error=str(e))
            raise StoreUnavailableError(f"Redis error: {e}") from e

    async def schedule(self, job: RetryJob) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._jobs, job.message_id, dumps(job.to_dict()))
            pipe.zadd(self._pending, {job.message_id: job.scheduled_at})
            await self._guard(pipe.execute())

    async def claim_due(self, now: float, limit: int, visibility_timeout: float) -> List[RetryJob]:
        bodies = await self._guard(
            self.redis.eval(
                self._CLAIM_LUA, 3, self._pending, self._processing, self._jobs, now, limit, visibility_timeout
            )
        )
        return [RetryJob.from_dict(loads(body)) for body in bodies or []]

    async def ack(self, message_id: str) -> None:
        await self._guard(self.redis.eval(self._ACK_LUA, 3, self._processing, self._pending, self._jobs, message_id))

    async def requeue_stale(self, now: float) -> int:
        return int(await self._guard(self.redis.eval(self._REQUEUE_LUA, 2, self._processing, self._pending, now)))

    async def dead_letter(self, job: RetryJob) -> None:
        await self._guard(self.redis.hset(self._dead, job.message_id, dumps(job.to_dict())))

    async def get_dead_letter(self, message_id: str) -> Optional[RetryJob]:
        body = await self._guard(self.redis.hget(self._dead, message_id))
        return RetryJob.from_dict(loads(body)) if body else None

    async def list_dead_letters(self, tenant_id: Optional[str] = None) -> List[RetryJob]:
        raw = await self._guard(self.redis.hgetall(self._dead)) or {}
        jobs = [RetryJob.from_dict(loads(body)) for body in raw.values()]
        if tenant_id is not None:
            jobs = [j for j in jobs if j.tenant_id == tenant_id]
        return sorted(jobs, key=lambda j: j.dead_lettered_at or 0.0)

    async def remove_dead_letter(self, message_id: str) -> bool:
        return int(await self._guard(self.redis.hdel(self._dead, message_id))) > 0

    async def get_pending(self, message_id: str) -> Optional[RetryJob]:
        if await self._guard(self.redis.zscore(self._pending, message_id)) is None:
            return None
        body = await self._guard(self.redis.hget(self._jobs, message_id))
        return RetryJob.from_dict(loads(body)) if body else None

    async def counts(self) -> dict:
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.zcard(self._pending)
            pipe.zcard(self._processing)
            pipe.hlen(self._dead)
            pending, processing, dead = await self._guard(pipe.execute())
        return {"pending": int(pending), "processing": int(processing), "dead_lettered": int(dead)}
