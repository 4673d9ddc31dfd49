"""
Shared Domain Layer
Pure domain contracts with no framework dependencies
"""
from shared.domain.domain_event import DomainEvent

__all__ = [
    "DomainEvent",
]
