"""In-memory campaign run-state registry."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Optional

from shared.utils.clock import Clock, system_clock, utcnow

from messaging.domain.entities.campaign import CampaignState


class InMemoryCampaignRegistry:
    def __init__(self, clock: Clock = system_clock) -> None:
        self._states: Dict[str, CampaignState] = {}
        self._clock = clock

    def register(self, campaign_id: str, tenant_id: str) -> CampaignState:
        state = self._states.setdefault(campaign_id, CampaignState(campaign_id=campaign_id, tenant_id=tenant_id))
        return replace(state)

    async def is_paused(self, campaign_id: str) -> bool:
        state = self._states.get(campaign_id)
        return bool(state and state.is_paused)

    async def pause(self, campaign_id: str, tenant_id: str, reason: str) -> bool:
        state = self._states.setdefault(campaign_id, CampaignState(campaign_id=campaign_id, tenant_id=tenant_id))
        if state.is_paused:
            return False
        state.pause(reason, utcnow(self._clock))
        return True

    async def resume(self, campaign_id: str) -> bool:
        state = self._states.get(campaign_id)
        if state is None or not state.is_paused:
            return False
        state.resume(utcnow(self._clock))
        return True

    async def get_state(self, campaign_id: str) -> Optional[CampaignState]:
        state = self._states.get(campaign_id)
        return replace(state) if state is not None else None
