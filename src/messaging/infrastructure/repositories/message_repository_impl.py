"""In-memory outbound message repository."""

from __future__ import annotations

import copy
from typing import Dict, List, Optional

from messaging.domain.entities.outbound_message import OutboundMessage
from messaging.domain.value_objects.message_status import MessageStatus


class InMemoryOutboundMessageRepository:
    """Single-process message store; records are copied in and out."""

    def __init__(self) -> None:
        self._messages: Dict[str, OutboundMessage] = {}

    async def get_by_id(self, message_id: str) -> Optional[OutboundMessage]:
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message is not None else None

    async def save(self, message: OutboundMessage) -> OutboundMessage:
        self._messages[message.id] = copy.deepcopy(message)
        return message

    async def list_by_status(self, tenant_id: str, status: MessageStatus, limit: int = 100) -> List[OutboundMessage]:
        matches = [
            m for m in self._messages.values() if m.tenant_id == tenant_id and m.status == status
        ]
        matches.sort(key=lambda m: m.created_at)
        return [copy.deepcopy(m) for m in matches[:limit]]
