"""
Composition root.

Builds every collaborator once and wires them by reference. The
container is attached to `app.state` by the application factory and
rebuilt freely in tests with fakes swapped in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from shared.config import Settings
from shared.infrastructure.cache import InMemoryCounterStore, RedisCounterStore, create_redis_client
from shared.infrastructure.cache.counter_store import ICounterStore
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger, AuditSink, LoggingAuditSink
from shared.infrastructure.security.encryption import CredentialVault
from shared.utils.clock import Clock, system_clock

from messaging.application.services.backoff_tracker import BackoffTracker
from messaging.application.services.campaign_control import CampaignControl
from messaging.application.services.compliance_gate import ComplianceGate
from messaging.application.services.credential_service import CredentialService
from messaging.application.services.dispatcher import Dispatcher
from messaging.application.services.error_tracker import ErrorTracker
from messaging.application.services.reply_lock_service import ReplyLockService
from messaging.application.services.retry_queue import RetryQueue
from messaging.application.services.sla_service import SlaService
from messaging.application.services.throughput_limiter import ThroughputLimiter
from messaging.application.worker.campaign_worker import CampaignWorker
from messaging.application.worker.retry_worker import RetryWorker
from messaging.application.worker.sweep_scheduler import SweepScheduler
from messaging.domain.protocols.retry_job_store import RetryJobStore
from messaging.domain.protocols.whatsapp_gateway_repository import WhatsAppGateway
from messaging.infrastructure.adapters.whatsapp_gateway import WhatsAppCloudGateway
from messaging.infrastructure.repositories.campaign_registry_impl import InMemoryCampaignRegistry
from messaging.infrastructure.repositories.channel_repository_impl import InMemoryChannelCredentialRepository
from messaging.infrastructure.repositories.consent_repository_impl import InMemoryContactConsentRepository
from messaging.infrastructure.repositories.message_repository_impl import InMemoryOutboundMessageRepository
from messaging.infrastructure.repositories.redis_retry_job_store import RedisRetryJobStore
from messaging.infrastructure.repositories.retry_job_store_impl import InMemoryRetryJobStore
from messaging.infrastructure.repositories.sla_repository_impl import InMemorySlaRepository
from messaging.infrastructure.repositories.tenant_policy_provider_impl import StaticTenantPolicyProvider

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    clock: Clock
    store: ICounterStore
    event_bus: EventBus
    audit: AuditLogger
    vault: CredentialVault
    policies: StaticTenantPolicyProvider
    messages: InMemoryOutboundMessageRepository
    channels: InMemoryChannelCredentialRepository
    consents: InMemoryContactConsentRepository
    sla_repo: InMemorySlaRepository
    campaign_registry: InMemoryCampaignRegistry
    retry_store: RetryJobStore
    gateway: WhatsAppGateway
    limiter: ThroughputLimiter
    backoff: BackoffTracker
    errors: ErrorTracker
    retry_queue: RetryQueue
    compliance: ComplianceGate
    credentials: CredentialService
    reply_locks: ReplyLockService
    sla: SlaService
    campaigns: CampaignControl
    dispatcher: Dispatcher
    retry_worker: RetryWorker
    campaign_worker: CampaignWorker
    sweeps: SweepScheduler
    redis: Optional[Any] = None

    async def close(self) -> None:
        await self.audit.flush()
        close = getattr(self.gateway, "close", None)
        if close is not None:
            await close()
        if self.redis is not None:
            await self.redis.aclose()


def build_container(
    settings: Settings,
    *,
    clock: Clock = system_clock,
    gateway: Optional[WhatsAppGateway] = None,
    store: Optional[ICounterStore] = None,
    retry_store: Optional[RetryJobStore] = None,
    audit_sink: Optional[AuditSink] = None,
    vault: Optional[CredentialVault] = None,
    policies: Optional[StaticTenantPolicyProvider] = None,
) -> Container:
    redis_client = None
    if store is None or retry_store is None:
        if settings.counter_backend == "redis":
            redis_client = create_redis_client(settings.redis_url or "")
            store = store or RedisCounterStore(redis_client, settings.app_namespace)
            retry_store = retry_store or RedisRetryJobStore(redis_client, settings.app_namespace)
        else:
            logger.warning("Using in-process counter store; run a single instance only")
            store = store or InMemoryCounterStore(clock)
            retry_store = retry_store or InMemoryRetryJobStore()

    event_bus = EventBus()
    audit = AuditLogger(audit_sink or LoggingAuditSink(), clock)
    vault = vault or CredentialVault.from_settings(settings)
    policies = policies or StaticTenantPolicyProvider()
    gateway = gateway or WhatsAppCloudGateway(
        base_url=settings.wa_api_base_url, timeout=settings.wa_request_timeout_seconds
    )

    messages = InMemoryOutboundMessageRepository()
    channels = InMemoryChannelCredentialRepository()
    consents = InMemoryContactConsentRepository()
    sla_repo = InMemorySlaRepository()
    campaign_registry = InMemoryCampaignRegistry(clock)

    limiter = ThroughputLimiter(store, policies, settings, clock)
    backoff = BackoffTracker(store, settings, clock)
    errors = ErrorTracker(store, settings, clock)
    retry_queue = RetryQueue(retry_store, audit, settings, clock)
    compliance = ComplianceGate(consents, event_bus, audit, fail_open=settings.compliance_fail_open, clock=clock)
    credentials = CredentialService(channels, vault, audit, clock)
    reply_locks = ReplyLockService(
        store,
        policies,
        event_bus,
        audit,
        default_timeout_seconds=settings.reply_lock_timeout_seconds,
        clock=clock,
    )
    sla = SlaService(sla_repo, policies, event_bus, audit, at_risk_minutes=settings.sla_at_risk_minutes, clock=clock)
    campaigns = CampaignControl(campaign_registry, backoff, errors, event_bus, audit)
    dispatcher = Dispatcher(
        messages=messages,
        compliance=compliance,
        limiter=limiter,
        credentials=credentials,
        gateway=gateway,
        retry_queue=retry_queue,
        backoff=backoff,
        errors=errors,
        campaigns=campaigns,
        audit=audit,
        settings=settings,
        sla=sla,
        clock=clock,
    )
    retry_worker = RetryWorker(
        retry_queue,
        dispatcher,
        interval=settings.retry_poll_interval_seconds,
        batch_size=settings.retry_batch_size,
    )
    campaign_worker = CampaignWorker(dispatcher, campaigns, backoff)
    sweeps = SweepScheduler(
        reply_locks=reply_locks, sla=sla, limiter=limiter, retry_queue=retry_queue, settings=settings
    )

    return Container(
        settings=settings,
        clock=clock,
        store=store,
        event_bus=event_bus,
        audit=audit,
        vault=vault,
        policies=policies,
        messages=messages,
        channels=channels,
        consents=consents,
        sla_repo=sla_repo,
        campaign_registry=campaign_registry,
        retry_store=retry_store,
        gateway=gateway,
        limiter=limiter,
        backoff=backoff,
        errors=errors,
        retry_queue=retry_queue,
        compliance=compliance,
        credentials=credentials,
        reply_locks=reply_locks,
        sla=sla,
        campaigns=campaigns,
        dispatcher=dispatcher,
        retry_worker=retry_worker,
        campaign_worker=campaign_worker,
        sweeps=sweeps,
        redis=redis_client,
    )
