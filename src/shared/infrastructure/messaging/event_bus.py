"""
Event Bus
In-process publish/subscribe keyed by topic name
"""
from __future__ import annotations

from collections import defaultdict
from typing import Awaitable, Callable

from shared.domain.domain_event import DomainEvent
from shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """
    Topic based event bus.

    One instance is created by the composition root and passed to every
    publisher and subscriber; there is no module-level instance.
    A failing handler is logged and never stops the remaining handlers
    or the publisher.

    Attributes:
        _handlers: Dictionary mapping topics to handler lists
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """
        Subscribe a handler to a topic.

        Args:
            topic: Topic name, e.g. "contact.opted_out"
            handler: Async callable that accepts the event

        Example:
            async def send_confirmation(event: DomainEvent):
                ...

            event_bus.subscribe("contact.opted_out", send_confirmation)
        """
        self._handlers[topic].append(handler)
        logger.debug("Handler subscribed", topic=topic, handler=getattr(handler, "__name__", repr(handler)))

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        if topic in self._handlers and handler in self._handlers[topic]:
            self._handlers[topic].remove(handler)

    async def publish(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(event.topic, []))
        if not handlers:
            logger.debug("No handlers for event", topic=event.topic, event_id=str(event.event_id))
            return

        logger.info(
            "Publishing event",
            topic=event.topic,
            event_id=str(event.event_id),
            handler_count=len(handlers),
        )
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    topic=event.topic,
                    handler=getattr(handler, "__name__", repr(handler)),
                    event_id=str(event.event_id),
                    error=str(e),
                    exc_info=True,
                )

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    def clear_handlers(self, topic: str | None = None) -> None:
        if topic:
            self._handlers[topic].clear()
        else:
            self._handlers.clear()
