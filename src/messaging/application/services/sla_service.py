"""First-response SLA tracking and breach escalation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from shared.domain.domain_event import DomainEvent
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger
from shared.utils.clock import Clock, system_clock, utcnow

from messaging.domain.entities.sla_deadline import SlaDeadline
from messaging.domain.protocols.sla_repository import SlaRepository
from messaging.domain.protocols.tenant_policy_provider import TenantPolicyProvider
from messaging.domain.value_objects.governance import Priority

logger = get_logger(__name__)

TOPIC_SLA_BREACHED = "sla.breached"


@dataclass(frozen=True, slots=True)
class SlaStats:
    tenant_id: str
    awaiting_response: int
    active_sla: int
    breached: int
    at_risk: int


class SlaService:
    """
    Deadline based first-response tracking.

    One deadline per unanswered inbound episode: further inbound messages
    while the episode is open keep the existing deadline. The deadline is
    cleared by exactly one first response, and a sweep flips an overdue
    episode to breached exactly once (both are compare-and-set in the
    repository, so concurrent sweeps never double-emit).
    """

    def __init__(
        self,
        repo: SlaRepository,
        policies: TenantPolicyProvider,
        event_bus: EventBus,
        audit: AuditLogger,
        *,
        at_risk_minutes: int = 15,
        clock: Clock = system_clock,
    ) -> None:
        self._repo = repo
        self._policies = policies
        self._bus = event_bus
        self._audit = audit
        self._at_risk = timedelta(minutes=at_risk_minutes)
        self._clock = clock

    async def set_deadline(
        self, tenant_id: str, conversation_id: str, priority: Priority = Priority.NORMAL
    ) -> Optional[SlaDeadline]:
        """
        Start a response obligation for an inbound message.

        Returns:
            The open deadline for the episode, or None when the tenant
            has SLA tracking disabled
        """
        policy = await self._policies.get_policy(tenant_id)
        if not policy.sla.enabled:
            return None

        existing = await self._repo.get(conversation_id)
        if existing is not None and existing.awaiting_response and existing.deadline is not None:
            return existing

        now = utcnow(self._clock)
        record = SlaDeadline(
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            started_at=now,
            deadline=now + timedelta(minutes=policy.sla.first_response_minutes),
            priority=existing.priority if existing is not None else priority,
        )
        await self._repo.save(record)
        logger.info(
            "SLA deadline set",
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            deadline=record.deadline.isoformat() if record.deadline else None,
        )
        return record

    async def clear_on_first_response(self, conversation_id: str, responder_id: str) -> bool:
        """Record the first outbound reply of the open episode. Later replies are no-ops."""
        cleared = await self._repo.record_first_response(
            conversation_id, responder_id=responder_id, at=utcnow(self._clock)
        )
        if cleared:
            logger.info("SLA first response recorded", conversation_id=conversation_id, responder_id=responder_id)
        return cleared

    async def sweep_breaches(self, tenant_id: Optional[str] = None) -> list[str]:
        """Flip every overdue, unanswered episode to breached; returns the conversation ids."""
        now = utcnow(self._clock)
        breached: list[str] = []
        for record in await self._repo.find_overdue(now, tenant_id):
            policy = await self._policies.get_policy(record.tenant_id)
            escalate = policy.sla.auto_escalate
            priority = record.priority.escalate() if escalate else record.priority
            if not await self._repo.mark_breached(
                record.conversation_id, at=now, priority=priority, escalated=escalate
            ):
                continue
            breached.append(record.conversation_id)

            overdue_minutes = int((now - record.deadline).total_seconds() // 60) if record.deadline else 0
            logger.warning(
                "SLA breached",
                tenant_id=record.tenant_id,
                conversation_id=record.conversation_id,
                overdue_minutes=overdue_minutes,
                priority=priority.value,
            )
            await self._bus.publish(
                DomainEvent(
                    topic=TOPIC_SLA_BREACHED,
                    tenant_id=record.tenant_id,
                    aggregate_id=record.conversation_id,
                    payload={
                        "deadline": record.deadline.isoformat() if record.deadline else None,
                        "overdue_minutes": overdue_minutes,
                        "previous_priority": record.priority.value,
                        "priority": priority.value,
                        "escalated": escalate,
                    },
                )
            )
            self._audit.emit(
                tenant_id=record.tenant_id,
                action="sla.breached",
                entity_type="conversation",
                entity_id=record.conversation_id,
                status="failure",
                details={"overdue_minutes": overdue_minutes, "priority": priority.value, "escalated": escalate},
            )
        return breached

    async def list_breached(self, tenant_id: str) -> list[SlaDeadline]:
        records = await self._repo.list_for_tenant(tenant_id)
        return sorted((r for r in records if r.breached), key=lambda r: r.breached_at or r.started_at)

    async def stats(self, tenant_id: str) -> SlaStats:
        now = utcnow(self._clock)
        horizon = now + self._at_risk
        records = await self._repo.list_for_tenant(tenant_id)
        return SlaStats(
            tenant_id=tenant_id,
            awaiting_response=sum(1 for r in records if r.awaiting_response),
            active_sla=sum(1 for r in records if r.active),
            breached=sum(1 for r in records if r.breached and r.awaiting_response),
            at_risk=sum(1 for r in records if r.is_at_risk(now, horizon)),
        )
