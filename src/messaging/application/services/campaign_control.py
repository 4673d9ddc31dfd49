"""Campaign run state: pause on critical errors, operator resume."""

from __future__ import annotations

from typing import Any, Optional

from shared.domain.domain_event import DomainEvent
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger

from messaging.application.services.backoff_tracker import BackoffTracker
from messaging.application.services.error_tracker import ErrorTracker
from messaging.domain.exceptions import CampaignNotFoundError
from messaging.domain.protocols.campaign_registry import CampaignRegistry

logger = get_logger(__name__)

TOPIC_PAUSED = "campaign.paused"
TOPIC_RESUMED = "campaign.resumed"


class CampaignControl:
    """Pauses and resumes campaigns, keeping backoff and error state in step."""

    def __init__(
        self,
        registry: CampaignRegistry,
        backoff: BackoffTracker,
        errors: ErrorTracker,
        event_bus: EventBus,
        audit: AuditLogger,
    ) -> None:
        self._registry = registry
        self._backoff = backoff
        self._errors = errors
        self._bus = event_bus
        self._audit = audit

    async def is_paused(self, campaign_id: str) -> bool:
        return await self._registry.is_paused(campaign_id)

    async def pause(self, campaign_id: str, tenant_id: str, reason: str, details: Optional[dict[str, Any]] = None) -> bool:
        """Pause; the event and audit record are written once, on the transition."""
        if not await self._registry.pause(campaign_id, tenant_id, reason):
            return False
        logger.warning("Campaign paused", campaign_id=campaign_id, tenant_id=tenant_id, reason=reason)
        await self._bus.publish(
            DomainEvent(
                topic=TOPIC_PAUSED,
                tenant_id=tenant_id,
                aggregate_id=campaign_id,
                payload={"reason": reason, **(details or {})},
            )
        )
        self._audit.emit(
            tenant_id=tenant_id,
            action="campaign.paused",
            entity_type="campaign",
            entity_id=campaign_id,
            status="failure",
            details={"reason": reason, **(details or {})},
        )
        return True

    async def resume(self, campaign_id: str, actor_id: Optional[str] = None) -> bool:
        """Clear the pause, the backoff state and the consecutive error counter."""
        state = await self._registry.get_state(campaign_id)
        if state is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        resumed = await self._registry.resume(campaign_id)
        await self._backoff.clear(campaign_id)
        await self._errors.record_success(campaign_id)
        if resumed:
            logger.info("Campaign resumed", campaign_id=campaign_id, actor_id=actor_id)
            await self._bus.publish(
                DomainEvent(topic=TOPIC_RESUMED, tenant_id=state.tenant_id, aggregate_id=campaign_id)
            )
            self._audit.emit(
                tenant_id=state.tenant_id,
                action="campaign.resumed",
                entity_type="campaign",
                entity_id=campaign_id,
                actor_id=actor_id,
            )
        return resumed

    async def describe(self, campaign_id: str) -> dict[str, Any]:
        state = await self._registry.get_state(campaign_id)
        if state is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        backoff = await self._backoff.get_state(campaign_id)
        stats = await self._errors.get_stats(campaign_id)
        return {
            "campaign_id": campaign_id,
            "tenant_id": state.tenant_id,
            "status": state.status.value,
            "paused_reason": state.paused_reason,
            "paused_at": state.paused_at.isoformat() if state.paused_at else None,
            "backoff": {
                "attempts": backoff.attempts,
                "backoff_ms": backoff.backoff_ms,
                "next_retry_at": backoff.next_retry_at.isoformat() if backoff.next_retry_at else None,
                "last_error": backoff.last_error,
            },
            "errors": {
                "total": stats.total_errors,
                "consecutive": stats.consecutive_errors,
                "by_code": stats.errors_by_code,
                "last_error": stats.last_error,
                "last_error_at": stats.last_error_at,
            },
        }
