"""
Advisory Reply Lock
Non-enforcing "someone is already replying" marker for a conversation.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AdvisoryLock:
    conversation_id: str
    holder_id: str
    acquired_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class LockAcquisition:
    """
    Result of an acquire call.

    `acquired=False` is information for the caller ("X is replying"),
    never a refusal to proceed.
    """
    acquired: bool
    current_holder: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    holder_id: Optional[str] = None
    acquired_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    remaining_seconds: int = 0
