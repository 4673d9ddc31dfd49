# /src/shared/utils/clock.py
"""
Time source used by every TTL / deadline computation.

Services accept a `Clock` (a zero-arg callable returning epoch seconds) so
tests can drive expiry deterministically instead of sleeping.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


def now_ms(clock: Clock) -> int:
    return int(clock() * 1000)


def to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def utcnow(clock: Clock = system_clock) -> datetime:
    return to_datetime(clock())
