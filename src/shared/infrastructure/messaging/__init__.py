"""
Shared Messaging Infrastructure
Dependency-injected event bus
"""
from shared.infrastructure.messaging.event_bus import EventBus, EventHandler

__all__ = [
    "EventBus",
    "EventHandler",
]
