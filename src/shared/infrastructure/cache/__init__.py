"""
Shared Counter Store Infrastructure
Atomic counters, sliding windows and advisory claims (in-memory or Redis)
"""
from shared.infrastructure.cache.counter_store import ClaimResult, ICounterStore, WindowResult
from shared.infrastructure.cache.memory_store import InMemoryCounterStore
from shared.infrastructure.cache.redis_store import RedisCounterStore, create_redis_client

__all__ = [
    "ICounterStore",
    "WindowResult",
    "ClaimResult",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_redis_client",
]
