"""Domain services for the dispatch governor."""

from .error_classifier import Classification, classify
from .quota_policy import PLAN_LIMITS, daily_bucket, monthly_bucket, resolve_limits

__all__ = [
    'Classification',
    'classify',
    'PLAN_LIMITS',
    'resolve_limits',
    'daily_bucket',
    'monthly_bucket',
]
