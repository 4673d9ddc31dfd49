"""Sequential campaign sender honouring pause, backoff and throughput limits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional
from uuid import uuid4

from shared.infrastructure.observability.logger import get_logger

from messaging.application.services.backoff_tracker import BackoffTracker
from messaging.application.services.campaign_control import CampaignControl
from messaging.application.services.dispatcher import Dispatcher
from messaging.domain.entities.dispatch import DispatchRequest, DispatchResult
from messaging.domain.value_objects.dispatch_outcome import DispatchStatus
from messaging.domain.value_objects.message_status import MessageType, SendOrigin

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class CampaignRecipient:
    recipient: str
    payload: dict[str, Any]
    message_id: Optional[str] = None


@dataclass
class CampaignRunSummary:
    campaign_id: str
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    blocked: int = 0
    queued_for_retry: int = 0
    rate_limited: int = 0
    paused: bool = False
    paused_reason: Optional[str] = None
    remaining: int = 0
    results: list[DispatchResult] = field(default_factory=list)


class CampaignWorker:
    """
    Sends a campaign's recipient list one message at a time.

    Before every send the worker checks the pause flag and the campaign's
    backoff, sleeping for the indicated wait. A RATE_LIMITED result is
    re-checked after its retry-after, at most `max_rate_limit_rechecks`
    times per message. The run stops as soon as the campaign is paused.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        campaigns: CampaignControl,
        backoff: BackoffTracker,
        *,
        max_rate_limit_rechecks: int = 3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.dispatcher = dispatcher
        self.campaigns = campaigns
        self.backoff = backoff
        self.max_rate_limit_rechecks = max_rate_limit_rechecks
        self._sleep = sleep

    async def _send_one(
        self, campaign_id: str, tenant_id: str, item: CampaignRecipient, message_type: MessageType
    ) -> DispatchResult:
        request = DispatchRequest(
            tenant_id=tenant_id,
            recipient=item.recipient,
            payload=item.payload,
            message_type=message_type,
            campaign_id=campaign_id,
            origin=SendOrigin.CAMPAIGN,
            message_id=item.message_id or uuid4().hex,
        )
        rechecks = 0
        while True:
            wait = await self.backoff.should_wait(campaign_id)
            if wait.should_wait:
                logger.info("Campaign backing off", campaign_id=campaign_id, wait_ms=wait.wait_ms)
                await self._sleep(wait.wait_ms / 1000)

            result = await self.dispatcher.dispatch(request)
            if result.status != DispatchStatus.RATE_LIMITED or rechecks >= self.max_rate_limit_rechecks:
                return result
            rechecks += 1
            await self._sleep(float(result.retry_after_seconds or 1))

    async def run(
        self,
        campaign_id: str,
        tenant_id: str,
        recipients: Iterable[CampaignRecipient],
        message_type: MessageType = MessageType.TEMPLATE,
    ) -> CampaignRunSummary:
        items = list(recipients)
        summary = CampaignRunSummary(campaign_id=campaign_id)
        logger.info("Campaign run started", campaign_id=campaign_id, recipients=len(items))

        for index, item in enumerate(items):
            if await self.campaigns.is_paused(campaign_id):
                summary.paused = True
                summary.remaining = len(items) - index
                break

            result = await self._send_one(campaign_id, tenant_id, item, message_type)
            summary.attempted += 1
            summary.results.append(result)
            if result.status == DispatchStatus.SENT:
                summary.sent += 1
            elif result.status == DispatchStatus.COMPLIANCE_BLOCKED:
                summary.blocked += 1
            elif result.status == DispatchStatus.QUEUED_FOR_RETRY:
                summary.queued_for_retry += 1
            elif result.status == DispatchStatus.RATE_LIMITED:
                summary.rate_limited += 1
            elif result.status == DispatchStatus.CAMPAIGN_PAUSED:
                summary.paused = True
                summary.remaining = len(items) - index
                break
            else:
                summary.failed += 1

        if summary.paused:
            state = await self.campaigns.describe(campaign_id)
            summary.paused_reason = state.get("paused_reason")
            logger.warning(
                "Campaign run halted by pause",
                campaign_id=campaign_id,
                reason=summary.paused_reason,
                remaining=summary.remaining,
            )
        else:
            logger.info(
                "Campaign run finished",
                campaign_id=campaign_id,
                sent=summary.sent,
                failed=summary.failed,
                queued_for_retry=summary.queued_for_retry,
            )
        return summary
