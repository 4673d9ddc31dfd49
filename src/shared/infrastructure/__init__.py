"""
Shared Infrastructure Layer
Counter store, security, messaging, and observability
"""
from shared.infrastructure.cache import (
    ClaimResult,
    ICounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    WindowResult,
    create_redis_client,
)
from shared.infrastructure.messaging import EventBus
from shared.infrastructure.observability import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from shared.infrastructure.security import (
    AuditLogger,
    CredentialDecryptionError,
    CredentialVault,
    InMemoryAuditSink,
    LoggingAuditSink,
)

__all__ = [
    # Counter store
    "ICounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "WindowResult",
    "ClaimResult",
    "create_redis_client",
    # Security
    "CredentialVault",
    "CredentialDecryptionError",
    "AuditLogger",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    # Messaging
    "EventBus",
    # Observability
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
