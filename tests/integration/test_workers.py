import asyncio

from messaging.application.worker.campaign_worker import CampaignRecipient, CampaignWorker
from messaging.domain.entities.dispatch import DispatchRequest
from messaging.domain.entities.sla_deadline import SlaDeadline
from messaging.domain.entities.tenant_policy import SlaSettings, TenantPolicy
from messaging.domain.value_objects.dispatch_outcome import DispatchStatus
from messaging.domain.value_objects.governance import PlanTier
from messaging.domain.value_objects.message_status import MessageStatus
from tests.support import RECIPIENT, TENANT, http_error

RECIPIENTS = [CampaignRecipient(f"91987654321{i}", {"name": "promo"}) for i in range(3)]


def fake_sleep(clock, record):
    async def sleep(seconds):
        record.append(seconds)
        clock.advance(seconds)

    return sleep


async def test_retry_worker_redelivers_due_jobs(container, gateway, clock):
    gateway.script(http_error(502))
    first = await container.dispatcher.dispatch(DispatchRequest(TENANT, RECIPIENT, {"body": "hi"}))

    assert await container.retry_worker.run_once() == 0
    clock.advance(60)
    assert await container.retry_worker.run_once() == 1
    assert (await container.messages.get_by_id(first.message_id)).status == MessageStatus.SENT
    assert (await container.retry_queue.stats())["processing"] == 0


async def test_retry_worker_loop_stops_on_shutdown(container):
    container.retry_worker.interval = 0.01
    container.retry_worker.start()
    await asyncio.sleep(0.05)
    assert container.retry_worker.is_running
    await container.retry_worker.shutdown()
    assert not container.retry_worker.is_running


async def test_campaign_run_stops_when_the_campaign_pauses(container, gateway):
    gateway.script("wamid.first", http_error(401))
    worker = CampaignWorker(container.dispatcher, container.campaigns, container.backoff)

    summary = await worker.run("camp-1", TENANT, RECIPIENTS)

    assert summary.sent == 1
    assert summary.failed == 1
    assert summary.paused
    assert summary.paused_reason == "CREDENTIAL_INVALID"
    assert summary.remaining == 1
    assert len(gateway.sent) == 2


async def test_campaign_run_waits_out_backoff(container, gateway, clock):
    slept = []
    gateway.script(http_error(429))
    worker = CampaignWorker(container.dispatcher, container.campaigns, container.backoff, sleep=fake_sleep(clock, slept))

    summary = await worker.run("camp-1", TENANT, RECIPIENTS)

    assert summary.queued_for_retry == 1
    assert summary.sent == 2
    assert slept == [1.0]
    assert (await container.backoff.get_state("camp-1")).attempts == 0


async def test_campaign_run_rechecks_after_rate_limit(container, gateway, clock):
    container.policies.set_policy(TenantPolicy(tenant_id=TENANT, plan=PlanTier.FREE))
    slept = []
    worker = CampaignWorker(container.dispatcher, container.campaigns, container.backoff, sleep=fake_sleep(clock, slept))

    summary = await worker.run("camp-1", TENANT, RECIPIENTS[:2])

    assert summary.sent == 2
    assert slept == [1.0]


async def test_sweeps_clear_expired_state(container, clock):
    container.policies.set_policy(
        TenantPolicy(tenant_id=TENANT, plan=PlanTier.BASIC, sla=SlaSettings(enabled=True, first_response_minutes=5))
    )
    await container.reply_locks.acquire(TENANT, "conv-1", "agent-1")
    await container.sla.set_deadline(TENANT, "conv-2")
    await container.limiter.check_all(TENANT, "chan-a")

    clock.advance(6 * 60)
    sweeps = container.sweeps
    assert await sweeps.sweep_locks() == 1
    assert await sweeps.sweep_sla() == ["conv-2"]
    assert await sweeps.cleanup_limits() > 0
    assert await sweeps.requeue_stale_retries() == 0
    assert not (await container.reply_locks.status("conv-1")).locked


async def test_failing_sweep_is_contained(container):
    async def broken(*args, **kwargs):
        raise RuntimeError("store down")

    container.sweeps.sla = type("BrokenSla", (), {"sweep_breaches": broken})()
    assert await container.sweeps.sweep_sla() == []


async def test_scheduler_registers_every_sweep(container):
    sweeps = container.sweeps
    sweeps.start()
    try:
        assert sweeps.running
        assert {job.id for job in sweeps.scheduler.get_jobs()} == {
            "reply_lock_sweep",
            "sla_breach_sweep",
            "rate_limit_cleanup",
            "retry_requeue_stale",
        }
    finally:
        sweeps.shutdown()
    await asyncio.sleep(0)
