import pytest

from shared.config import Settings, _parse_key_ring
from tests.support import TEST_KEY_V1


def test_defaults_are_valid():
    s = Settings()
    assert s.counter_backend == "memory"
    assert s.retry_delays_seconds == (60, 300, 900, 3600)
    assert s.retry_max_retries == 4
    assert s.effective_log_format == "console"
    assert not s.is_prod


def test_redis_backend_requires_url():
    with pytest.raises(ValueError):
        Settings(counter_backend="redis")
    assert Settings(counter_backend="redis", redis_url="redis://localhost:6379/0").counter_backend == "redis"


def test_prod_requires_encryption_keys():
    with pytest.raises(ValueError):
        Settings(environment="prod")
    s = Settings(environment="prod", token_encryption_keys={"v1": TEST_KEY_V1})
    assert s.is_prod and s.is_prod_like
    assert s.effective_log_format == "json"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"token_encryption_keys": {"v1": "abcd"}},
        {"token_encryption_keys": {"v1": TEST_KEY_V1}, "token_encryption_key_version": "v2"},
        {"backoff_initial_ms": 5000, "backoff_max_ms": 1000},
        {"retry_delays_seconds": ()},
        {"environment": "qa"},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_key_ring_parsing():
    assert _parse_key_ring("v1:aa, v2:bb") == {"v1": "aa", "v2": "bb"}
    assert _parse_key_ring(None) == {}
    with pytest.raises(ValueError):
        _parse_key_ring("nocolon")


def test_safe_dict_masks_secrets():
    s = Settings(token_encryption_keys={"v1": TEST_KEY_V1}, redis_url="redis://:pw@localhost:6379/0")
    safe = s.safe_dict()
    assert safe["redis_url"] == "<masked>"
    assert TEST_KEY_V1 not in str(safe)


def test_env_loading(monkeypatch):
    from shared.config import get_settings

    monkeypatch.setenv("RETRY_DELAYS_SECONDS", "10,20")
    monkeypatch.setenv("RETRY_MAX_RETRIES", "2")
    monkeypatch.setenv("COMPLIANCE_FAIL_OPEN", "false")
    get_settings.cache_clear()
    try:
        s = get_settings()
        assert s.retry_delays_seconds == (10, 20)
        assert s.retry_max_retries == 2
        assert s.compliance_fail_open is False
    finally:
        get_settings.cache_clear()
