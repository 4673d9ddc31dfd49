"""
Message Repository Protocol
Persistence interface for outbound message records.
"""
from abc import abstractmethod
from typing import Optional, List, Protocol

from messaging.domain.entities.outbound_message import OutboundMessage
from messaging.domain.value_objects.message_status import MessageStatus


class OutboundMessageRepository(Protocol):
    """Repository protocol for OutboundMessage."""

    @abstractmethod
    async def get_by_id(self, message_id: str) -> Optional[OutboundMessage]:
        """Retrieve outbound message by ID."""
        ...

    @abstractmethod
    async def save(self, message: OutboundMessage) -> OutboundMessage:
        """Insert or update a message record."""
        ...

    @abstractmethod
    async def list_by_status(
        self, tenant_id: str, status: MessageStatus, limit: int = 100
    ) -> List[OutboundMessage]:
        """List a tenant's messages in a given status."""
        ...
