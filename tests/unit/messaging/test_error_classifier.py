import pytest

from messaging.domain.exceptions import ProviderError
from messaging.domain.services.error_classifier import BACKOFF_MS, classify
from messaging.domain.value_objects.dispatch_outcome import DispatchErrorCode, ErrorAction


def err(status=None, code=None, **kw):
    return ProviderError("boom", http_status=status, provider_code=code, **kw)


@pytest.mark.parametrize(
    "error, action, code",
    [
        (err(429), ErrorAction.BACKOFF, DispatchErrorCode.UPSTREAM_BACKOFF),
        (err(400, 130429), ErrorAction.BACKOFF, DispatchErrorCode.UPSTREAM_BACKOFF),
        (err(400, 80007), ErrorAction.BACKOFF, DispatchErrorCode.UPSTREAM_BACKOFF),
        (err(500), ErrorAction.RETRY, DispatchErrorCode.UPSTREAM_TRANSIENT),
        (err(503), ErrorAction.RETRY, DispatchErrorCode.UPSTREAM_TRANSIENT),
        (ProviderError.timeout(), ErrorAction.RETRY, DispatchErrorCode.UPSTREAM_TRANSIENT),
        (ProviderError.network("refused"), ErrorAction.RETRY, DispatchErrorCode.UPSTREAM_TRANSIENT),
        (err(401), ErrorAction.PAUSE_CAMPAIGN, DispatchErrorCode.CREDENTIAL_INVALID),
        (err(400, 190), ErrorAction.PAUSE_CAMPAIGN, DispatchErrorCode.CREDENTIAL_INVALID),
        (err(400, 131056), ErrorAction.PAUSE_CAMPAIGN, DispatchErrorCode.POLICY_VIOLATION),
        (err(400, 132001), ErrorAction.PAUSE_CAMPAIGN, DispatchErrorCode.TEMPLATE_INVALID),
        (err(400, 131026), ErrorAction.FAIL_MESSAGE, DispatchErrorCode.RECIPIENT_INVALID),
        (err(403, 368), ErrorAction.PAUSE_CAMPAIGN, DispatchErrorCode.ACCOUNT_BLOCKED),
        (err(400, 99999), ErrorAction.RETRY, DispatchErrorCode.UNKNOWN),
    ],
)
def test_classification_table(error, action, code):
    verdict = classify(error)
    assert verdict.action == action
    assert verdict.code == code


def test_first_matching_row_wins():
    # a 5xx carrying a recipient code is still transient
    assert classify(err(502, 131026)).action == ErrorAction.RETRY
    # a 429 carrying an auth code is still a backoff
    assert classify(err(429, 190)).action == ErrorAction.BACKOFF


def test_backoff_honours_longer_retry_after():
    assert classify(err(429)).backoff_ms == BACKOFF_MS
    assert classify(err(429, retry_after=120)).backoff_ms == 120_000
    assert classify(err(429, retry_after=5)).backoff_ms == BACKOFF_MS


def test_unknown_errors_are_retryable_never_dropped():
    verdict = classify(err(None, None))
    assert verdict.retryable is True
    assert verdict.code == DispatchErrorCode.UNKNOWN


def test_pause_rows_are_not_retryable():
    assert classify(err(401)).retryable is False
    assert classify(err(401)).pauses_campaign is True
    assert classify(err(400, 131026)).pauses_campaign is False
