"""
Dispatch Outcome Enums
Statuses, classifier actions and the error taxonomy of a send attempt.
"""
from enum import Enum


class DispatchStatus(str, Enum):
    SENT = "sent"
    QUEUED_FOR_RETRY = "queued_for_retry"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    COMPLIANCE_BLOCKED = "compliance_blocked"
    CAMPAIGN_PAUSED = "campaign_paused"


class ErrorAction(str, Enum):
    """What to do with a provider failure."""
    BACKOFF = "BACKOFF"                # provider throttled us: wait and retry
    RETRY = "RETRY"                    # transient: short delay, retry
    PAUSE_CAMPAIGN = "PAUSE_CAMPAIGN"  # needs a human before sending again
    FAIL_MESSAGE = "FAIL_MESSAGE"      # recipient specific, permanent


class DispatchErrorCode(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_BACKOFF = "UPSTREAM_BACKOFF"
    UPSTREAM_TRANSIENT = "UPSTREAM_TRANSIENT"
    CREDENTIAL_INVALID = "CREDENTIAL_INVALID"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    ACCOUNT_BLOCKED = "ACCOUNT_BLOCKED"
    TEMPLATE_INVALID = "TEMPLATE_INVALID"
    RECIPIENT_INVALID = "RECIPIENT_INVALID"
    COMPLIANCE_BLOCKED = "COMPLIANCE_BLOCKED"
    CAMPAIGN_PAUSED = "CAMPAIGN_PAUSED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {
        DispatchErrorCode.RATE_LIMITED,
        DispatchErrorCode.UPSTREAM_BACKOFF,
        DispatchErrorCode.UPSTREAM_TRANSIENT,
        DispatchErrorCode.UNKNOWN,
    }
)


class LimitLevel(str, Enum):
    """Throughput budget levels, checked in this order."""
    GLOBAL = "global"
    TENANT = "tenant"
    CHANNEL = "channel"


class LimitKind(str, Enum):
    PER_SECOND = "per_second"
    PER_MINUTE = "per_minute"  # trailing sliding window
    DAILY = "daily"
    MONTHLY = "monthly"
    TEMPLATE_DAILY = "template_daily"
