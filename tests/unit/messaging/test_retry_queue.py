from datetime import datetime, timezone

import pytest

from shared.infrastructure.security.audit_log import AuditLogger
from messaging.application.services.retry_queue import RetryOutcome, RetryQueue
from messaging.domain.entities.outbound_message import OutboundMessage
from messaging.domain.exceptions import DeadLetterNotFoundError
from messaging.infrastructure.repositories.retry_job_store_impl import InMemoryRetryJobStore
from tests.support import make_settings


@pytest.fixture
def retry_store():
    return InMemoryRetryJobStore()


@pytest.fixture
def audit(audit_sink, clock):
    return AuditLogger(audit_sink, clock)


@pytest.fixture
def queue(retry_store, audit, clock):
    return RetryQueue(retry_store, audit, make_settings(), clock)


def _message(clock, message_id="m-1"):
    return OutboundMessage(
        id=message_id,
        tenant_id="t1",
        recipient="919876543210",
        payload={"body": "hi"},
        created_at=datetime.fromtimestamp(clock(), tz=timezone.utc),
        campaign_id="camp-1",
    )


def test_delay_schedule_is_clamped(queue):
    assert [queue.delay_for(n) for n in range(6)] == [60, 300, 900, 3600, 3600, 3600]


async def test_job_is_not_due_before_its_delay(queue, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT")
    assert await queue.claim_due() == []
    clock.advance(60)
    jobs = await queue.claim_due()
    assert [j.message_id for j in jobs] == ["m-1"]
    assert jobs[0].retry_count == 0


async def test_failure_requeues_with_next_delay(queue, retry_store, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT")
    clock.advance(60)
    (job,) = await queue.claim_due()
    result = await queue.on_failure(job, last_error="503 again", error_code="UPSTREAM_TRANSIENT")
    assert result.outcome == RetryOutcome.REQUEUED
    assert result.job.retry_count == 1
    assert result.job.scheduled_at == clock() + 300
    assert (await retry_store.counts())["processing"] == 0


async def test_exhaustion_moves_job_to_dead_letter(queue, audit, audit_sink, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT", retry_count=3)
    clock.advance(3600)
    (job,) = await queue.claim_due()
    result = await queue.on_failure(job, last_error="still down", error_code="UPSTREAM_TRANSIENT")
    assert result.outcome == RetryOutcome.DEAD_LETTERED
    assert result.job.retry_count == 4
    dead = await queue.list_dead_letters("t1")
    assert [d.message_id for d in dead] == ["m-1"]
    assert dead[0].last_error == "still down"

    # a dead letter is never picked up again
    clock.advance(10_000)
    assert await queue.claim_due() == []

    await audit.flush()
    exhausted = audit_sink.by_action("retry.exhausted")
    assert len(exhausted) == 1
    assert exhausted[0].details["retry_count"] == 4
    assert exhausted[0].details["error"] == "still down"


async def test_success_reports_attempts_and_audits(queue, audit, audit_sink, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT", retry_count=2)
    clock.advance(900)
    (job,) = await queue.claim_due()
    assert await queue.on_success(job) == 3
    await audit.flush()
    assert audit_sink.actions() == ["retry.enqueued", "retry.succeeded"]
    assert audit_sink.by_action("retry.succeeded")[0].details["retry_count"] == 3


async def test_defer_does_not_consume_an_attempt(queue, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT", retry_count=1)
    clock.advance(300)
    (job,) = await queue.claim_due()
    deferred = await queue.defer(job, 5)
    assert deferred.retry_count == 1
    clock.advance(5)
    (again,) = await queue.claim_due()
    assert again.retry_count == 1


async def test_stale_claims_are_requeued(queue, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT")
    clock.advance(60)
    assert len(await queue.claim_due()) == 1
    assert await queue.requeue_stale() == 0
    clock.advance(120)
    assert await queue.requeue_stale() == 1
    assert len(await queue.claim_due()) == 1


async def test_manual_resend_starts_a_fresh_budget(queue, clock):
    await queue.enqueue_retry(_message(clock), last_error="503", error_code="UPSTREAM_TRANSIENT", retry_count=3)
    clock.advance(3600)
    (job,) = await queue.claim_due()
    await queue.on_failure(job, last_error="down", error_code="UPSTREAM_TRANSIENT")

    fresh = await queue.resend_dead_letter("m-1", actor_id="ops-1")
    assert fresh.retry_count == 0
    assert await queue.list_dead_letters() == []
    (due,) = await queue.claim_due()
    assert due.message_id == "m-1"


async def test_resend_unknown_dead_letter_raises(queue):
    with pytest.raises(DeadLetterNotFoundError):
        await queue.resend_dead_letter("missing")


async def test_stats(queue, clock):
    await queue.enqueue_retry(_message(clock, "m-1"), last_error="x", error_code="UNKNOWN")
    await queue.enqueue_retry(_message(clock, "m-2"), last_error="x", error_code="UNKNOWN")
    stats = await queue.stats()
    assert stats["pending"] == 2
    assert stats["max_retries"] == 4
    assert stats["delays_seconds"] == [60, 300, 900, 3600]
