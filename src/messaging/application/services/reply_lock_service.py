"""Advisory "someone is already replying" lock for shared inbox conversations."""

from __future__ import annotations

from typing import Optional

from shared.domain.domain_event import DomainEvent
from shared.exceptions import StoreUnavailableError
from shared.infrastructure.cache.counter_store import ICounterStore
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger
from shared.utils.clock import Clock, now_ms, system_clock, to_datetime

from messaging.domain.entities.reply_lock import LockAcquisition, LockStatus
from messaging.domain.protocols.tenant_policy_provider import TenantPolicyProvider

logger = get_logger(__name__)

KEY_PREFIX = "reply_lock:"

REASON_DISABLED = "SOFT_LOCK_DISABLED"
REASON_HELD = "HELD_BY_OTHER"
REASON_STORE_UNAVAILABLE = "LOCK_STORE_UNAVAILABLE"


class ReplyLockService:
    """
    Short-lived advisory lock per conversation.

    A second holder is informed, never blocked: `acquire` returns
    `acquired=False` with the current holder and the caller may still
    reply. Repeated acquisition by the same holder refreshes the expiry
    (heartbeat) and keeps the original acquisition time. If the lock store
    is unreachable the lock fails open.
    """

    def __init__(
        self,
        store: ICounterStore,
        policies: TenantPolicyProvider,
        event_bus: EventBus,
        audit: AuditLogger,
        *,
        default_timeout_seconds: int = 60,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._policies = policies
        self._bus = event_bus
        self._audit = audit
        self._default_timeout = default_timeout_seconds
        self._clock = clock

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"{KEY_PREFIX}{conversation_id}"

    async def acquire(self, tenant_id: str, conversation_id: str, holder_id: str) -> LockAcquisition:
        policy = await self._policies.get_policy(tenant_id)
        if not policy.inbox.soft_lock_enabled:
            return LockAcquisition(acquired=True, reason=REASON_DISABLED)

        timeout = policy.inbox.soft_lock_timeout_seconds or self._default_timeout
        try:
            claim = await self._store.claim(
                self._key(conversation_id),
                owner=holder_id,
                ttl_ms=timeout * 1000,
                now_ms=now_ms(self._clock),
            )
        except StoreUnavailableError as e:
            logger.warning("Reply lock store unavailable, failing open", conversation_id=conversation_id, error=str(e))
            return LockAcquisition(acquired=True, reason=REASON_STORE_UNAVAILABLE)

        expires_at = to_datetime(claim.expires_at_ms / 1000)
        if not claim.acquired:
            return LockAcquisition(
                acquired=False,
                current_holder=claim.owner,
                expires_at=expires_at,
                reason=REASON_HELD,
                message=f"{claim.owner} is currently replying",
            )

        if not claim.refreshed:
            logger.debug("Reply lock acquired", conversation_id=conversation_id, holder_id=holder_id)
            await self._bus.publish(
                DomainEvent(
                    topic="lock.acquired",
                    tenant_id=tenant_id,
                    aggregate_id=conversation_id,
                    payload={"holder_id": holder_id, "expires_at": expires_at.isoformat()},
                )
            )
            self._audit.emit(
                tenant_id=tenant_id,
                action="lock.acquired",
                entity_type="conversation",
                entity_id=conversation_id,
                actor_id=holder_id,
                details={"timeout_seconds": timeout},
            )
        return LockAcquisition(acquired=True, current_holder=holder_id, expires_at=expires_at)

    async def release(self, tenant_id: str, conversation_id: str, holder_id: str) -> bool:
        """Release if held by `holder_id`; releasing someone else's lock is a no-op."""
        try:
            released = await self._store.compare_and_delete(
                self._key(conversation_id), field="owner", expected=holder_id
            )
        except StoreUnavailableError as e:
            logger.warning("Reply lock store unavailable on release", conversation_id=conversation_id, error=str(e))
            return False
        if released:
            await self._bus.publish(
                DomainEvent(
                    topic="lock.released",
                    tenant_id=tenant_id,
                    aggregate_id=conversation_id,
                    payload={"holder_id": holder_id},
                )
            )
            self._audit.emit(
                tenant_id=tenant_id,
                action="lock.released",
                entity_type="conversation",
                entity_id=conversation_id,
                actor_id=holder_id,
            )
        return released

    async def status(self, conversation_id: str) -> LockStatus:
        try:
            data = await self._store.hgetall(self._key(conversation_id))
        except StoreUnavailableError:
            return LockStatus(locked=False)
        owner: Optional[str] = data.get("owner")
        if not owner:
            return LockStatus(locked=False)
        expires_ms = int(data.get("expires_at", 0) or 0)
        now = now_ms(self._clock)
        if expires_ms <= now:
            return LockStatus(locked=False)
        return LockStatus(
            locked=True,
            holder_id=owner,
            acquired_at=to_datetime(int(data.get("acquired_at", 0) or 0) / 1000),
            expires_at=to_datetime(expires_ms / 1000),
            remaining_seconds=max(0, (expires_ms - now) // 1000),
        )

    async def sweep_expired(self) -> int:
        removed = await self._store.purge_expired(KEY_PREFIX)
        if removed:
            logger.info("Expired reply locks swept", count=removed)
        return removed
