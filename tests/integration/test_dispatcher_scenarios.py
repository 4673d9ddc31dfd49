import asyncio

import pytest

from messaging.domain.entities.dispatch import DispatchRequest
from messaging.domain.entities.tenant_policy import TenantPolicy
from messaging.domain.exceptions import InvalidRecipientError, LimitExceededError
from messaging.domain.value_objects.dispatch_outcome import DispatchErrorCode, DispatchStatus
from messaging.domain.value_objects.governance import ConsentSource, PlanTier
from messaging.domain.value_objects.message_status import MessageStatus, SendOrigin
from tests.support import CHANNEL, RECIPIENT, TENANT, http_error


def request(**overrides):
    base = {"tenant_id": TENANT, "recipient": RECIPIENT, "payload": {"body": "hello"}}
    base.update(overrides)
    return DispatchRequest(**base)


def campaign_request(campaign_id="camp-1", **overrides):
    return request(campaign_id=campaign_id, origin=SendOrigin.CAMPAIGN, **overrides)


async def redeliver_due(container):
    jobs = await container.retry_queue.claim_due()
    assert len(jobs) == 1
    return await container.dispatcher.redeliver(jobs[0])


async def test_burst_beyond_plan_rate_is_refused_with_retry_after(container, gateway):
    results = await asyncio.gather(*(container.dispatcher.dispatch(request()) for _ in range(15)))

    sent = [r for r in results if r.status == DispatchStatus.SENT]
    limited = [r for r in results if r.status == DispatchStatus.RATE_LIMITED]
    assert len(sent) == 10
    assert len(limited) == 5
    assert all(r.retry_after_seconds == 1 for r in limited)
    assert all(r.details["level"] == "tenant" for r in limited)
    assert len(gateway.sent) == 10


async def test_successful_send_uses_the_decrypted_credential(container, gateway, audit_sink):
    result = await container.dispatcher.dispatch(request())

    assert result.ok
    assert result.provider_message_id == "wamid.1"
    assert gateway.sent[0]["access_token"] == "EAAG-live-token"
    assert gateway.sent[0]["channel_id"] == CHANNEL
    stored = await container.messages.get_by_id(result.message_id)
    assert stored.status == MessageStatus.SENT

    await container.audit.flush()
    (sent,) = audit_sink.by_action("message.sent")
    assert sent.details["recipient"] == "****3210"
    quota = await container.limiter.quota_status(TENANT)
    assert quota["usage"]["messages_today"] == 1


async def test_expired_token_pauses_the_campaign(container, gateway, audit_sink):
    gateway.script(http_error(401, code=190))

    result = await container.dispatcher.dispatch(campaign_request())

    assert result.status == DispatchStatus.FAILED
    assert result.error_code == DispatchErrorCode.CREDENTIAL_INVALID
    assert await container.campaigns.is_paused("camp-1")
    assert (await container.messages.get_by_id(result.message_id)).status == MessageStatus.FAILED
    assert (await container.retry_queue.stats())["pending"] == 0

    refused = await container.dispatcher.dispatch(campaign_request())
    assert refused.status == DispatchStatus.CAMPAIGN_PAUSED
    assert len(gateway.sent) == 1

    await container.audit.flush()
    assert audit_sink.by_action("campaign.paused")[0].details["reason"] == "CREDENTIAL_INVALID"


async def test_transient_failures_are_retried_until_success(container, gateway, clock, audit_sink):
    gateway.script(http_error(500), http_error(500), http_error(500))

    first = await container.dispatcher.dispatch(request())
    assert first.status == DispatchStatus.QUEUED_FOR_RETRY
    assert (await container.messages.get_by_id(first.message_id)).status == MessageStatus.RETRY_PENDING

    assert await container.retry_queue.claim_due() == []
    for delay, expected in ((60, DispatchStatus.QUEUED_FOR_RETRY), (300, DispatchStatus.QUEUED_FOR_RETRY), (900, DispatchStatus.SENT)):
        clock.advance(delay)
        result = await redeliver_due(container)
        assert result.status == expected

    assert result.details["retry_count"] == 3
    stored = await container.messages.get_by_id(first.message_id)
    assert stored.status == MessageStatus.SENT
    assert stored.retry_count == 3

    await container.audit.flush()
    (succeeded,) = audit_sink.by_action("retry.succeeded")
    assert succeeded.details["retry_count"] == 3
    assert audit_sink.by_action("message.sent")[0].details["retry_count"] == 3


async def test_exhausted_retries_move_to_dead_letter_and_can_be_resent(container, gateway, clock):
    gateway.script(*[http_error(503)] * 5)

    first = await container.dispatcher.dispatch(request())
    for _ in range(4):
        clock.advance(3600)
        last = await redeliver_due(container)

    assert last.status == DispatchStatus.FAILED
    assert last.error_code == DispatchErrorCode.RETRY_EXHAUSTED
    (dead,) = await container.retry_queue.list_dead_letters(TENANT)
    assert dead.message_id == first.message_id
    assert dead.retry_count == 4
    assert (await container.messages.get_by_id(first.message_id)).status == MessageStatus.DEAD_LETTERED

    clock.advance(3600)
    assert await container.retry_queue.claim_due() == []

    fresh = await container.retry_queue.resend_dead_letter(first.message_id, actor_id="ops-1")
    assert fresh.retry_count == 0
    resent = await redeliver_due(container)
    assert resent.status == DispatchStatus.SENT
    assert await container.retry_queue.list_dead_letters(TENANT) == []


async def test_retry_picks_up_a_rotated_credential(container, gateway, clock):
    gateway.script(http_error(500))
    await container.dispatcher.dispatch(request())

    await container.credentials.store_token(TENANT, CHANNEL, "EAAG-rotated-token", waba_id="waba-a")
    clock.advance(60)
    result = await redeliver_due(container)

    assert result.ok
    assert gateway.sent[-1]["access_token"] == "EAAG-rotated-token"


async def test_paused_campaign_defers_retry_without_consuming_an_attempt(container, gateway, clock):
    gateway.script(http_error(500))
    first = await container.dispatcher.dispatch(campaign_request())
    await container.campaigns.pause("camp-1", TENANT, "operator")

    clock.advance(60)
    result = await redeliver_due(container)

    assert result.status == DispatchStatus.CAMPAIGN_PAUSED
    pending = await container.retry_store.get_pending(first.message_id)
    assert pending.retry_count == 0
    assert pending.scheduled_at == clock() + 60


async def test_provider_throttling_backs_off_the_campaign(container, gateway):
    gateway.script(http_error(429, retry_after=45))

    result = await container.dispatcher.dispatch(campaign_request())

    assert result.status == DispatchStatus.QUEUED_FOR_RETRY
    assert result.error_code == DispatchErrorCode.UPSTREAM_BACKOFF
    assert result.retry_after_seconds == 45
    wait = await container.backoff.should_wait("camp-1")
    assert wait.should_wait and wait.wait_ms == 1000
    assert not await container.campaigns.is_paused("camp-1")


async def test_invalid_recipient_fails_only_that_message(container, gateway):
    gateway.script(http_error(400, code=131026))
    result = await container.dispatcher.dispatch(campaign_request())

    assert result.status == DispatchStatus.FAILED
    assert result.error_code == DispatchErrorCode.RECIPIENT_INVALID
    assert not await container.campaigns.is_paused("camp-1")
    assert (await container.retry_queue.stats())["pending"] == 0


async def test_opted_out_recipient_is_blocked_before_the_provider(container, gateway):
    await container.compliance.opt_out(TENANT, "+91 98765 43210", source=ConsentSource.KEYWORD, reason="STOP")

    result = await container.dispatcher.dispatch(request())

    assert result.status == DispatchStatus.COMPLIANCE_BLOCKED
    assert gateway.sent == []
    quota = await container.limiter.quota_status(TENANT)
    assert quota["usage"]["messages_today"] == 0


async def test_missing_channel_is_a_credential_failure(container, gateway):
    result = await container.dispatcher.dispatch(request(tenant_id="tenant-without-channel"))
    assert result.status == DispatchStatus.FAILED
    assert result.error_code == DispatchErrorCode.CREDENTIAL_INVALID
    assert gateway.sent == []


async def test_malformed_recipient_is_rejected(container):
    with pytest.raises(InvalidRecipientError):
        await container.dispatcher.dispatch(request(recipient="12ab"))


async def test_template_submissions_are_capped_per_day(container, gateway):
    for _ in range(10):
        await container.dispatcher.submit_template(TENANT, {"name": "welcome"})
    assert gateway.templates[0]["waba_id"] == "waba-a"

    with pytest.raises(LimitExceededError) as info:
        await container.dispatcher.submit_template(TENANT, {"name": "welcome"})
    assert info.value.retry_after_seconds > 0


async def test_critical_provider_code_auto_pauses_the_campaign(container, gateway):
    gateway.script(http_error(400, code=131048))
    await container.dispatcher.dispatch(campaign_request())

    state = await container.campaigns.describe("camp-1")
    assert state["status"] == "paused"
    assert state["errors"]["by_code"] == {"131048": 1}


async def test_unreachable_recipient_code_does_not_pause_the_campaign(container, gateway):
    gateway.script(http_error(400, code=131047))
    result = await container.dispatcher.dispatch(campaign_request())

    assert result.status == DispatchStatus.FAILED
    assert result.error_code == DispatchErrorCode.RECIPIENT_INVALID
    state = await container.campaigns.describe("camp-1")
    assert state["status"] == "running"
    assert state["errors"]["by_code"] == {"131047": 1}


async def test_single_provider_throughput_error_backs_off_without_pausing(container, gateway):
    gateway.script(http_error(429, code=130429))
    result = await container.dispatcher.dispatch(campaign_request())

    assert result.status == DispatchStatus.QUEUED_FOR_RETRY
    assert result.error_code == DispatchErrorCode.UPSTREAM_BACKOFF
    assert not await container.campaigns.is_paused("camp-1")
    assert (await container.backoff.should_wait("camp-1")).should_wait


async def test_concurrent_sends_cannot_overrun_the_daily_quota(container, gateway):
    container.policies.set_policy(TenantPolicy(tenant_id=TENANT, plan=PlanTier.BASIC, overrides={"messages_per_day": 5}))
    gateway.delay = 0.01

    results = await asyncio.gather(*(container.dispatcher.dispatch(request()) for _ in range(10)))

    sent = [r for r in results if r.status == DispatchStatus.SENT]
    limited = [r for r in results if r.status == DispatchStatus.RATE_LIMITED]
    assert len(sent) == 5
    assert len(limited) == 5
    assert all(r.details["kind"] == "daily" for r in limited)
    quota = await container.limiter.quota_status(TENANT)
    assert quota["usage"]["messages_today"] == 5


async def test_failed_send_gives_back_its_quota_unit(container, gateway):
    gateway.script(http_error(500), http_error(400, code=131026))

    await container.dispatcher.dispatch(request())
    await container.dispatcher.dispatch(request())

    quota = await container.limiter.quota_status(TENANT)
    assert quota["usage"]["messages_today"] == 0
    assert quota["usage"]["messages_this_month"] == 0
