"""
Outbound dispatcher.

Composes the governance checks around one send attempt:
campaign pause → compliance → throughput (global, tenant, channel) →
calendar quota reservation → current credential → provider call with a timeout.
Failures are classified and routed to backoff, the retry queue, a
campaign pause or a single-message failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from shared.config import Settings
from shared.infrastructure.observability.logger import bind_context, get_logger, unbind_context
from shared.infrastructure.security.audit_log import AuditLogger
from shared.utils.clock import Clock, system_clock, to_datetime, utcnow

from messaging.application.services.backoff_tracker import BackoffTracker
from messaging.application.services.campaign_control import CampaignControl
from messaging.application.services.compliance_gate import ComplianceGate
from messaging.application.services.credential_service import CredentialService
from messaging.application.services.error_tracker import ErrorTracker
from messaging.application.services.retry_queue import RetryOutcome, RetryQueue
from messaging.application.services.sla_service import SlaService
from messaging.application.services.throughput_limiter import LimitCheck, QuotaReservation, ThroughputLimiter
from messaging.domain.entities.dispatch import DispatchRequest, DispatchResult
from messaging.domain.entities.outbound_message import OutboundMessage
from messaging.domain.entities.retry_job import RetryJob
from messaging.domain.exceptions import (
    CredentialDecryptionError,
    CredentialNotFoundError,
    LimitExceededError,
    ProviderError,
)
from messaging.domain.protocols.message_repository import OutboundMessageRepository
from messaging.domain.protocols.whatsapp_gateway_repository import WhatsAppGateway
from messaging.domain.services.error_classifier import Classification, classify
from messaging.domain.value_objects.dispatch_outcome import DispatchErrorCode, DispatchStatus, ErrorAction
from messaging.domain.value_objects.message_status import MessageType, SendOrigin
from messaging.domain.value_objects.phone_number import normalize_phone

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Refusal:
    """A pre-flight check that stopped the attempt before the provider call."""
    status: DispatchStatus
    code: DispatchErrorCode
    reason: str
    retry_after_seconds: Optional[int] = None
    details: Optional[dict[str, Any]] = None


class Dispatcher:
    """
    Single entry point for outbound sends (agent, campaign and retry).

    A quota unit is reserved before the provider call and given back when
    the send does not go out. Side effects after the provider call (backoff
    and error bookkeeping, message record, audit) are best effort: a
    failing side effect is logged and never changes the returned result.
    """

    def __init__(
        self,
        *,
        messages: OutboundMessageRepository,
        compliance: ComplianceGate,
        limiter: ThroughputLimiter,
        credentials: CredentialService,
        gateway: WhatsAppGateway,
        retry_queue: RetryQueue,
        backoff: BackoffTracker,
        errors: ErrorTracker,
        campaigns: CampaignControl,
        audit: AuditLogger,
        settings: Settings,
        sla: Optional[SlaService] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._messages = messages
        self._compliance = compliance
        self._limiter = limiter
        self._credentials = credentials
        self._gateway = gateway
        self._retry = retry_queue
        self._backoff = backoff
        self._errors = errors
        self._campaigns = campaigns
        self._audit = audit
        self._sla = sla
        self._timeout = settings.wa_request_timeout_seconds
        self._clock = clock

    # ---------- helpers ----------

    async def _best_effort(self, label: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await fn()
        except Exception as e:
            logger.error("Dispatch side effect failed", side_effect=label, error=str(e), exc_info=True)
            return None

    def _audit_message(self, message: OutboundMessage, action: str, *, status: str = "success", **details: Any) -> None:
        self._audit.emit(
            tenant_id=message.tenant_id,
            action=action,
            entity_type="message",
            entity_id=message.id,
            status=status,
            details={
                "recipient": message.recipient,
                "campaign_id": message.campaign_id,
                "retry_count": message.retry_count,
                **details,
            },
        )

    @staticmethod
    def _limit_refusal(check: LimitCheck) -> _Refusal:
        return _Refusal(
            status=DispatchStatus.RATE_LIMITED,
            code=DispatchErrorCode.RATE_LIMITED,
            reason=f"Rate limited: {check.reason}",
            retry_after_seconds=check.retry_after_seconds,
            details={
                "level": check.level.value if check.level else None,
                "kind": check.kind.value if check.kind else None,
                "limit": check.limit,
            },
        )

    async def _preflight(self, message: OutboundMessage) -> tuple[Optional[_Refusal], Optional[QuotaReservation]]:
        """
        Campaign pause, compliance, throughput and quota, in that order.

        The quota unit is reserved last, so a refusal never holds one.
        """
        if message.campaign_id and await self._campaigns.is_paused(message.campaign_id):
            return _Refusal(DispatchStatus.CAMPAIGN_PAUSED, DispatchErrorCode.CAMPAIGN_PAUSED, "Campaign is paused"), None

        if await self._compliance.is_blocked(message.tenant_id, message.recipient):
            refusal = _Refusal(
                DispatchStatus.COMPLIANCE_BLOCKED,
                DispatchErrorCode.COMPLIANCE_BLOCKED,
                "Recipient has opted out of messages",
            )
            return refusal, None

        channel = await self._credentials.get_channel(message.tenant_id)
        message.channel_id = channel.channel_id

        check = await self._limiter.check_all(message.tenant_id, channel.channel_id)
        if not check.allowed:
            return self._limit_refusal(check), None
        quota, reservation = await self._limiter.reserve_quota(message.tenant_id)
        if reservation is None:
            return self._limit_refusal(quota), None
        return None, reservation

    async def _release_quota(self, reservation: Optional[QuotaReservation]) -> None:
        if reservation is not None:
            await self._best_effort("release_quota", lambda: self._limiter.release_quota(reservation))

    async def _call_provider(self, message: OutboundMessage) -> str:
        """Send with the current credential; every failure surfaces as ProviderError."""
        channel, token = await self._credentials.current_token(message.tenant_id)
        try:
            return await asyncio.wait_for(
                self._gateway.send_message(
                    channel_id=channel.channel_id,
                    access_token=token,
                    to=message.recipient,
                    message_type=message.message_type,
                    payload=message.payload,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError.timeout(f"Provider call exceeded {self._timeout}s") from e

    # ---------- outcome handling ----------

    async def _on_sent(self, message: OutboundMessage, provider_id: str, retry_count: Optional[int], actor_id: Optional[str], conversation_id: Optional[str]) -> DispatchResult:
        message.mark_sent(provider_id, utcnow(self._clock), retry_count=retry_count)
        await self._best_effort("save_message", lambda: self._messages.save(message))
        if message.campaign_id:
            campaign_id = message.campaign_id
            await self._best_effort("clear_backoff", lambda: self._backoff.clear(campaign_id))
            await self._best_effort("record_success", lambda: self._errors.record_success(campaign_id))
        if conversation_id and self._sla is not None and actor_id:
            sla = self._sla
            await self._best_effort(
                "sla_first_response", lambda: sla.clear_on_first_response(conversation_id, actor_id)
            )
        logger.info("Message sent", message_id=message.id, retry_count=message.retry_count)
        self._audit_message(message, "message.sent", provider_message_id=provider_id)
        return DispatchResult(
            status=DispatchStatus.SENT,
            message_id=message.id,
            provider_message_id=provider_id,
            details={"retry_count": message.retry_count},
        )

    async def _on_refused(self, message: OutboundMessage, refusal: _Refusal) -> DispatchResult:
        now = utcnow(self._clock)
        if refusal.status == DispatchStatus.COMPLIANCE_BLOCKED:
            message.mark_blocked(now)
            self._audit_message(message, "message.blocked", status="failure", reason=refusal.reason)
        else:
            message.mark_failed(refusal.code.value, refusal.reason, now)
            action = "rate_limit.hit" if refusal.status == DispatchStatus.RATE_LIMITED else "message.refused"
            self._audit_message(
                message,
                action,
                status="failure",
                error_code=refusal.code.value,
                retry_after_seconds=refusal.retry_after_seconds,
                **(refusal.details or {}),
            )
        await self._best_effort("save_message", lambda: self._messages.save(message))
        return DispatchResult(
            status=refusal.status,
            message_id=message.id,
            error_code=refusal.code,
            reason=refusal.reason,
            retry_after_seconds=refusal.retry_after_seconds,
            details=refusal.details or {},
        )

    async def _credential_failure(self, message: OutboundMessage, error: Exception) -> DispatchResult:
        reason = "Channel credential missing or unreadable"
        message.mark_failed(DispatchErrorCode.CREDENTIAL_INVALID.value, str(error), utcnow(self._clock))
        await self._best_effort("save_message", lambda: self._messages.save(message))
        if message.campaign_id:
            campaign_id = message.campaign_id
            await self._best_effort(
                "pause_campaign",
                lambda: self._campaigns.pause(
                    campaign_id, message.tenant_id, DispatchErrorCode.CREDENTIAL_INVALID.value
                ),
            )
        self._audit_message(
            message, "message.failed", status="failure", error_code=DispatchErrorCode.CREDENTIAL_INVALID.value, error=str(error)
        )
        return DispatchResult(
            status=DispatchStatus.FAILED,
            message_id=message.id,
            error_code=DispatchErrorCode.CREDENTIAL_INVALID,
            reason=reason,
            action=ErrorAction.PAUSE_CAMPAIGN,
        )

    async def _track_error(self, message: OutboundMessage, error: ProviderError, verdict: Classification) -> None:
        """Backoff and consecutive-error bookkeeping; may auto-pause the campaign."""
        if not message.campaign_id:
            return
        campaign_id = message.campaign_id
        if verdict.action == ErrorAction.BACKOFF:
            await self._best_effort(
                "record_backoff",
                lambda: self._backoff.record_failure(campaign_id, verdict.code.value, error.message),
            )
        tracked_code = str(error.provider_code) if error.provider_code is not None else verdict.code.value
        decision = await self._best_effort(
            "record_error",
            lambda: self._errors.record_error(
                campaign_id, tracked_code, error.message, pauses_campaign=verdict.pauses_campaign
            ),
        )
        if verdict.pauses_campaign:
            await self._best_effort(
                "pause_campaign",
                lambda: self._campaigns.pause(
                    campaign_id, message.tenant_id, verdict.code.value, {"error_code": tracked_code, "detail": verdict.reason}
                ),
            )
        elif decision is not None and decision.should_auto_pause:
            await self._best_effort(
                "auto_pause_campaign",
                lambda: self._campaigns.pause(
                    campaign_id,
                    message.tenant_id,
                    decision.reason or "AUTO_PAUSE",
                    {"error_code": decision.error_code, "consecutive_errors": decision.consecutive_errors},
                ),
            )

    def _failure_result(self, message: OutboundMessage, verdict: Classification, status: DispatchStatus, *, code: Optional[DispatchErrorCode] = None, reason: Optional[str] = None) -> DispatchResult:
        return DispatchResult(
            status=status,
            message_id=message.id,
            error_code=code or verdict.code,
            reason=reason or verdict.reason,
            retry_after_seconds=verdict.backoff_ms // 1000 if verdict.retryable else None,
            action=verdict.action,
        )

    async def _on_provider_error(self, message: OutboundMessage, error: ProviderError) -> DispatchResult:
        """First-attempt failure: retryable classes are queued, the rest fail the message."""
        verdict = classify(error)
        now = utcnow(self._clock)
        logger.warning(
            "Provider send failed",
            message_id=message.id,
            http_status=error.http_status,
            provider_code=error.provider_code,
            action=verdict.action.value,
            error_code=verdict.code.value,
        )
        await self._track_error(message, error, verdict)

        if verdict.retryable:
            message.mark_retry_pending(verdict.code.value, error.message, 0, now)
            await self._best_effort("save_message", lambda: self._messages.save(message))
            await self._best_effort(
                "enqueue_retry",
                lambda: self._retry.enqueue_retry(message, last_error=error.message, error_code=verdict.code.value),
            )
            self._audit_message(
                message, "message.retry_pending", status="failure", error_code=verdict.code.value, error=error.message
            )
            return self._failure_result(message, verdict, DispatchStatus.QUEUED_FOR_RETRY)

        message.mark_failed(verdict.code.value, error.message, now)
        await self._best_effort("save_message", lambda: self._messages.save(message))
        self._audit_message(
            message, "message.failed", status="failure", error_code=verdict.code.value, error=error.message
        )
        return self._failure_result(message, verdict, DispatchStatus.FAILED)

    # ---------- public API ----------

    async def dispatch(self, request: DispatchRequest) -> DispatchResult:
        """
        Attempt one outbound send.

        Raises:
            InvalidRecipientError: recipient cannot be normalized
        """
        message = OutboundMessage(
            id=request.message_id or uuid4().hex,
            tenant_id=request.tenant_id,
            recipient=normalize_phone(request.recipient),
            payload=dict(request.payload),
            created_at=utcnow(self._clock),
            message_type=request.message_type,
            origin=request.origin,
            campaign_id=request.campaign_id,
        )
        bind_context(message_id=message.id, tenant_id=message.tenant_id)
        try:
            await self._messages.save(message)
            reservation: Optional[QuotaReservation] = None
            try:
                refusal, reservation = await self._preflight(message)
                if refusal is not None:
                    return await self._on_refused(message, refusal)
                provider_id = await self._call_provider(message)
            except (CredentialNotFoundError, CredentialDecryptionError) as e:
                await self._release_quota(reservation)
                return await self._credential_failure(message, e)
            except ProviderError as e:
                await self._release_quota(reservation)
                return await self._on_provider_error(message, e)
            return await self._on_sent(message, provider_id, None, request.actor_id, request.conversation_id)
        finally:
            unbind_context("message_id", "tenant_id")

    async def redeliver(self, job: RetryJob) -> DispatchResult:
        """
        Re-attempt a claimed retry job with the current credential.

        Throttled or paused attempts are deferred without consuming an
        attempt; non-retryable failures abort the job.
        """
        message = await self._messages.get_by_id(job.message_id)
        if message is None:
            message = OutboundMessage(
                id=job.message_id,
                tenant_id=job.tenant_id,
                recipient=job.recipient,
                payload=dict(job.payload),
                created_at=to_datetime(job.original_timestamp),
                message_type=MessageType(job.message_type),
                origin=SendOrigin.RETRY,
                campaign_id=job.campaign_id,
                retry_count=job.retry_count,
            )
        bind_context(message_id=message.id, tenant_id=message.tenant_id, retry_count=job.retry_count)
        try:
            reservation: Optional[QuotaReservation] = None
            try:
                refusal, reservation = await self._preflight(message)
                if refusal is not None:
                    return await self._refused_retry(message, job, refusal)
                provider_id = await self._call_provider(message)
            except (CredentialNotFoundError, CredentialDecryptionError) as e:
                await self._release_quota(reservation)
                await self._retry.abort(job, last_error=str(e), error_code=DispatchErrorCode.CREDENTIAL_INVALID.value)
                return await self._credential_failure(message, e)
            except ProviderError as e:
                await self._release_quota(reservation)
                return await self._on_retry_error(message, job, e)

            attempts = await self._retry.on_success(job)
            return await self._on_sent(message, provider_id, attempts, None, None)
        finally:
            unbind_context("message_id", "tenant_id", "retry_count")

    async def _refused_retry(self, message: OutboundMessage, job: RetryJob, refusal: _Refusal) -> DispatchResult:
        if refusal.status == DispatchStatus.COMPLIANCE_BLOCKED:
            await self._retry.abort(job, last_error=refusal.reason, error_code=refusal.code.value)
            return await self._on_refused(message, refusal)

        delay = refusal.retry_after_seconds or self._retry.delay_for(0)
        await self._retry.defer(job, delay)
        return DispatchResult(
            status=refusal.status,
            message_id=message.id,
            error_code=refusal.code,
            reason=refusal.reason,
            retry_after_seconds=delay,
            details=refusal.details or {},
        )

    async def _on_retry_error(self, message: OutboundMessage, job: RetryJob, error: ProviderError) -> DispatchResult:
        verdict = classify(error)
        now = utcnow(self._clock)
        await self._track_error(message, error, verdict)

        if not verdict.retryable:
            await self._retry.abort(job, last_error=error.message, error_code=verdict.code.value)
            message.mark_failed(verdict.code.value, error.message, now)
            await self._best_effort("save_message", lambda: self._messages.save(message))
            self._audit_message(
                message, "message.failed", status="failure", error_code=verdict.code.value, error=error.message
            )
            return self._failure_result(message, verdict, DispatchStatus.FAILED)

        outcome = await self._retry.on_failure(job, last_error=error.message, error_code=verdict.code.value)
        if outcome.outcome == RetryOutcome.DEAD_LETTERED:
            message.mark_dead_lettered(error.message, outcome.job.retry_count, now)
            await self._best_effort("save_message", lambda: self._messages.save(message))
            self._audit_message(
                message, "message.dead_lettered", status="failure", error_code=verdict.code.value, error=error.message
            )
            return self._failure_result(
                message,
                verdict,
                DispatchStatus.FAILED,
                code=DispatchErrorCode.RETRY_EXHAUSTED,
                reason="Retries exhausted; message moved to dead letter",
            )

        message.mark_retry_pending(verdict.code.value, error.message, outcome.job.retry_count, now)
        await self._best_effort("save_message", lambda: self._messages.save(message))
        return self._failure_result(message, verdict, DispatchStatus.QUEUED_FOR_RETRY)

    async def submit_template(self, tenant_id: str, template: dict[str, Any], actor_id: Optional[str] = None) -> dict[str, Any]:
        """
        Submit a template for approval under the tenant's daily submission quota.

        Raises:
            LimitExceededError: daily template submissions used up
            ProviderError: provider rejected or failed the submission
        """
        check = await self._limiter.check_template_submission(tenant_id)
        if not check.allowed:
            raise LimitExceededError(
                "Daily template submission limit reached",
                level=check.level.value if check.level else "tenant",
                kind=check.kind.value if check.kind else "template_daily",
                retry_after_seconds=check.retry_after_seconds,
            )
        channel, token = await self._credentials.current_token(tenant_id)
        try:
            result = await asyncio.wait_for(
                self._gateway.submit_template(waba_id=channel.waba_id or "", access_token=token, template=template),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError.timeout(f"Template submission exceeded {self._timeout}s") from e
        except ProviderError as e:
            self._audit.emit(
                tenant_id=tenant_id,
                action="template.submitted",
                entity_type="template",
                entity_id=str(template.get("name", "")),
                status="failure",
                actor_id=actor_id,
                details={"http_status": e.http_status, "provider_code": e.provider_code, "error": e.message},
            )
            raise
        self._audit.emit(
            tenant_id=tenant_id,
            action="template.submitted",
            entity_type="template",
            entity_id=str(template.get("name", "")),
            actor_id=actor_id,
            details={"provider_template_id": result.get("id"), "remaining_today": check.remaining},
        )
        return result
