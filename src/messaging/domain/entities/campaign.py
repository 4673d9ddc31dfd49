"""
Campaign Run State
Pause/resume lifecycle shared by every send of a campaign.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from messaging.domain.value_objects.governance import CampaignStatus


@dataclass
class CampaignState:
    campaign_id: str
    tenant_id: str
    status: CampaignStatus = CampaignStatus.RUNNING
    paused_reason: Optional[str] = None
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None

    @property
    def is_paused(self) -> bool:
        return self.status == CampaignStatus.PAUSED

    def pause(self, reason: str, at: datetime) -> None:
        self.status = CampaignStatus.PAUSED
        self.paused_reason = reason
        self.paused_at = at

    def resume(self, at: datetime) -> None:
        self.status = CampaignStatus.RUNNING
        self.paused_reason = None
        self.resumed_at = at
