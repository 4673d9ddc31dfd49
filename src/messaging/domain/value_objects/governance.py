"""
Governance value objects: plan tiers, SLA priority, consent sources.
"""
from enum import Enum


class PlanTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: str | None) -> "PlanTier":
        """Unknown or missing plans fall back to free."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.FREE


class Priority(str, Enum):
    """Conversation priority ladder (low → normal → high → urgent)."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    def escalate(self) -> "Priority":
        ladder = list(Priority)
        idx = ladder.index(self)
        return ladder[min(idx + 1, len(ladder) - 1)]


class ConsentSource(str, Enum):
    KEYWORD = "keyword"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class CampaignStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
