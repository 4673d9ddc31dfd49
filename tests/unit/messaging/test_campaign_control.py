import pytest

from shared.infrastructure.cache import InMemoryCounterStore
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.security.audit_log import AuditLogger, InMemoryAuditSink

from messaging.application.services.backoff_tracker import BackoffTracker
from messaging.application.services.campaign_control import TOPIC_PAUSED, CampaignControl
from messaging.application.services.error_tracker import ErrorTracker
from messaging.domain.exceptions import CampaignNotFoundError
from messaging.infrastructure.repositories.campaign_registry_impl import InMemoryCampaignRegistry
from tests.support import TENANT


@pytest.fixture
def parts(clock, settings):
    store = InMemoryCounterStore(clock)
    sink = InMemoryAuditSink()
    bus = EventBus()
    backoff = BackoffTracker(store, settings, clock)
    errors = ErrorTracker(store, settings, clock)
    audit = AuditLogger(sink, clock)
    control = CampaignControl(InMemoryCampaignRegistry(clock), backoff, errors, bus, audit)
    return control, backoff, errors, bus, sink, audit


async def test_pause_is_reported_once(parts):
    control, _, _, bus, sink, audit = parts
    events = []

    async def record(event):
        events.append(event)

    bus.subscribe(TOPIC_PAUSED, record)
    assert await control.pause("camp-1", TENANT, "critical_error", {"error_code": "401"})
    assert not await control.pause("camp-1", TENANT, "critical_error")
    assert await control.is_paused("camp-1")

    assert len(events) == 1
    assert events[0].payload["reason"] == "critical_error"
    await audit.flush()
    assert sink.actions() == ["campaign.paused"]


async def test_resume_clears_backoff_and_consecutive_errors(parts):
    control, backoff, errors, _, sink, audit = parts
    await backoff.record_failure("camp-1", "500", "boom")
    await errors.record_error("camp-1", "500", "boom")
    await control.pause("camp-1", TENANT, "consecutive_errors")

    assert await control.resume("camp-1", actor_id="ops-1")
    assert not await control.is_paused("camp-1")
    assert (await backoff.get_state("camp-1")).attempts == 0
    assert (await errors.get_stats("camp-1")).consecutive_errors == 0
    assert (await errors.get_stats("camp-1")).total_errors == 1

    described = await control.describe("camp-1")
    assert described["status"] == "running"
    assert described["paused_reason"] is None

    await audit.flush()
    (resumed,) = sink.by_action("campaign.resumed")
    assert resumed.actor_id == "ops-1"


async def test_unknown_campaign(parts):
    control = parts[0]
    with pytest.raises(CampaignNotFoundError):
        await control.resume("nope")
    with pytest.raises(CampaignNotFoundError):
        await control.describe("nope")
