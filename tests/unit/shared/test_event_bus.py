from shared.domain.domain_event import DomainEvent
from shared.infrastructure.messaging.event_bus import EventBus


async def test_failing_handler_does_not_stop_the_others():
    bus = EventBus()
    seen = []

    async def broken(event):
        raise RuntimeError("handler bug")

    async def good(event):
        seen.append(event.aggregate_id)

    bus.subscribe("sla.breached", broken)
    bus.subscribe("sla.breached", good)
    await bus.publish(DomainEvent(topic="sla.breached", tenant_id="t1", aggregate_id="conv-1"))
    assert seen == ["conv-1"]


async def test_topics_are_isolated():
    bus = EventBus()
    seen = []

    async def good(event):
        seen.append(event.topic)

    bus.subscribe("lock.acquired", good)
    await bus.publish(DomainEvent(topic="lock.released", tenant_id="t1", aggregate_id="conv-1"))
    assert seen == []
    bus.unsubscribe("lock.acquired", good)
    assert bus.handler_count("lock.acquired") == 0
