"""In-memory channel credential repository."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

from messaging.domain.entities.channel import ChannelCredential


class InMemoryChannelCredentialRepository:
    """One channel per tenant; only ciphertext is held."""

    def __init__(self) -> None:
        self._channels: Dict[str, ChannelCredential] = {}

    async def get_for_tenant(self, tenant_id: str) -> Optional[ChannelCredential]:
        channel = self._channels.get(tenant_id)
        return replace(channel) if channel is not None else None

    async def save(self, credential: ChannelCredential) -> ChannelCredential:
        self._channels[credential.tenant_id] = replace(credential)
        return credential

    async def list_all(self) -> List[ChannelCredential]:
        return [replace(c) for c in self._channels.values()]
