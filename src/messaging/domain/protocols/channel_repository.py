"""
Channel Credential Repository Protocol
"""
from abc import abstractmethod
from typing import Optional, List, Protocol

from messaging.domain.entities.channel import ChannelCredential


class ChannelCredentialRepository(Protocol):
    """
    Durable storage of encrypted channel credentials.

    The provisioning flow that produces the credential lives outside this
    core; the dispatcher only reads and re-encrypts.
    """

    @abstractmethod
    async def get_for_tenant(self, tenant_id: str) -> Optional[ChannelCredential]:
        ...

    @abstractmethod
    async def save(self, credential: ChannelCredential) -> ChannelCredential:
        ...

    @abstractmethod
    async def list_all(self) -> List[ChannelCredential]:
        ...
