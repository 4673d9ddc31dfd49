# src/messaging/domain/services/error_classifier.py
"""
Provider error classification.

Maps an upstream error signal to exactly one action. The table is a
contract: rows are evaluated top to bottom and the first match wins.
Anything unrecognized is retried with a conservative delay, never dropped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from messaging.domain.exceptions import ProviderError
from messaging.domain.value_objects.dispatch_outcome import DispatchErrorCode, ErrorAction

RATE_LIMIT_CODES = frozenset({130429, 4, 80007})
AUTH_CODES = frozenset({190})
POLICY_CODES = frozenset({131056, 131048})
TEMPLATE_CODES = frozenset({132000, 132001, 132015})
RECIPIENT_CODES = frozenset({131026, 131047})
ACCOUNT_CODES = frozenset({131031, 368})

BACKOFF_MS = 30_000
TRANSIENT_RETRY_MS = 5_000
UNKNOWN_RETRY_MS = 10_000


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying one provider error."""
    action: ErrorAction
    code: DispatchErrorCode
    retryable: bool
    backoff_ms: int
    reason: str

    @property
    def pauses_campaign(self) -> bool:
        return self.action == ErrorAction.PAUSE_CAMPAIGN


def _pause(code: DispatchErrorCode, reason: str) -> Classification:
    return Classification(ErrorAction.PAUSE_CAMPAIGN, code, False, 0, reason)


def classify(error: ProviderError) -> Classification:
    """
    Classify a provider error.

    Args:
        error: Error raised by the gateway

    Returns:
        Classification with action, taxonomy code and suggested backoff

    Examples:
        >>> classify(ProviderError("Too many", http_status=429)).action
        <ErrorAction.BACKOFF: 'BACKOFF'>
        >>> classify(ProviderError("Boom", http_status=503)).code
        <DispatchErrorCode.UPSTREAM_TRANSIENT: 'UPSTREAM_TRANSIENT'>
    """
    status: Optional[int] = error.http_status
    code: Optional[int] = error.provider_code

    if status == 429 or code in RATE_LIMIT_CODES:
        backoff = BACKOFF_MS
        if error.retry_after:
            backoff = max(backoff, int(error.retry_after) * 1000)
        return Classification(
            ErrorAction.BACKOFF,
            DispatchErrorCode.UPSTREAM_BACKOFF,
            True,
            backoff,
            "Provider rate limit hit, backing off",
        )

    if status is not None and status >= 500:
        return Classification(
            ErrorAction.RETRY,
            DispatchErrorCode.UPSTREAM_TRANSIENT,
            True,
            TRANSIENT_RETRY_MS,
            f"Provider server error ({status}), will retry",
        )

    if error.is_timeout or error.is_network:
        return Classification(
            ErrorAction.RETRY,
            DispatchErrorCode.UPSTREAM_TRANSIENT,
            True,
            TRANSIENT_RETRY_MS,
            "Provider unreachable or timed out, will retry",
        )

    if status == 401 or code in AUTH_CODES:
        return _pause(DispatchErrorCode.CREDENTIAL_INVALID, "Access token expired or revoked")

    if code in POLICY_CODES:
        return _pause(DispatchErrorCode.POLICY_VIOLATION, "Provider policy violation, review required")

    if code in TEMPLATE_CODES:
        return _pause(DispatchErrorCode.TEMPLATE_INVALID, "Template rejected or paused by provider")

    if code in RECIPIENT_CODES:
        return Classification(
            ErrorAction.FAIL_MESSAGE,
            DispatchErrorCode.RECIPIENT_INVALID,
            False,
            0,
            "Recipient cannot receive messages",
        )

    if code in ACCOUNT_CODES:
        return _pause(DispatchErrorCode.ACCOUNT_BLOCKED, "Sender account restricted by provider")

    return Classification(
        ErrorAction.RETRY,
        DispatchErrorCode.UNKNOWN,
        True,
        UNKNOWN_RETRY_MS,
        f"Unrecognized provider error: {error.message}",
    )
