"""
Campaign Registry Protocol
Owner of each campaign's run state (pause/resume).
"""
from abc import abstractmethod
from typing import Optional, Protocol

from messaging.domain.entities.campaign import CampaignState


class CampaignRegistry(Protocol):

    @abstractmethod
    async def is_paused(self, campaign_id: str) -> bool:
        ...

    @abstractmethod
    async def pause(self, campaign_id: str, tenant_id: str, reason: str) -> bool:
        """Pause a campaign; returns True only on the running → paused transition."""
        ...

    @abstractmethod
    async def resume(self, campaign_id: str) -> bool:
        ...

    @abstractmethod
    async def get_state(self, campaign_id: str) -> Optional[CampaignState]:
        ...
