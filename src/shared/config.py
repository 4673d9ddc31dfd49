"""
Centralized configuration for the outbound dispatch governor.

- Frozen dataclass loaded from OS env; optionally parses a .env file.
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _get_env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be a number")


def _get_env_int_tuple(key: str, default: tuple[int, ...]) -> tuple[int, ...]:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return tuple(int(p) for p in v.split(",") if p.strip())
    except ValueError:
        raise ValueError(f"Env var {key} must be a comma separated list of integers")


def _parse_key_ring(raw: Optional[str]) -> dict[str, str]:
    """Parse "v1:hexkey,v2:hexkey" into {"v1": "hexkey", ...}."""
    ring: dict[str, str] = {}
    if not raw:
        return ring
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        version, sep, key = item.partition(":")
        if not sep or not version or not key:
            raise ValueError("TOKEN_ENCRYPTION_KEYS entries must look like 'v1:<hex key>'")
        ring[version.strip()] = key.strip()
    return ring


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


def _validate_positive(value: float, *, key: str) -> None:
    if value <= 0:
        raise ValueError(f"{key} must be > 0")


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]
CounterBackend = Literal["memory", "redis"]
LogFormat = Literal["json", "console"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Optional[LogFormat] = None
    app_namespace: str = "dispatch"

    # Shared counter / lock store
    redis_url: Optional[str] = None
    counter_backend: CounterBackend = "memory"

    # WhatsApp / Provider
    wa_api_base_url: str = "https://graph.facebook.com/v21.0"
    wa_request_timeout_seconds: float = 15.0

    # Credential vault
    token_encryption_keys: dict[str, str] = field(default_factory=dict)
    token_encryption_key_version: str = "v1"

    # Compliance
    compliance_fail_open: bool = True

    # Throughput limits (tenant per-second comes from the plan tier)
    global_limit_per_second: int = 200
    global_limit_per_minute: int = 10000
    tenant_limit_per_minute: int = 1000
    channel_limit_per_second: int = 70
    channel_limit_per_minute: int = 3000
    rate_window_seconds: int = 60

    # Campaign backoff
    backoff_initial_ms: int = 1000
    backoff_max_ms: int = 60000
    backoff_multiplier: float = 2.0
    backoff_ttl_seconds: int = 3600

    # Error tracking / auto-pause
    consecutive_error_threshold: int = 10
    error_stats_ttl_seconds: int = 3600
    consecutive_error_ttl_seconds: int = 300

    # Retry queue
    retry_delays_seconds: tuple[int, ...] = (60, 300, 900, 3600)
    retry_max_retries: int = 4
    retry_poll_interval_seconds: float = 5.0
    retry_batch_size: int = 20
    retry_visibility_timeout_seconds: int = 120

    # Advisory reply lock
    reply_lock_timeout_seconds: int = 60
    lock_sweep_interval_seconds: int = 30

    # SLA
    sla_sweep_interval_seconds: int = 60
    sla_at_risk_minutes: int = 15

    # Rate limiter store cleanup
    rate_limit_cleanup_interval_seconds: int = 60

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_prod_like: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )
        object.__setattr__(
            self, "counter_backend",
            _validate_choice(self.counter_backend, choices=("memory", "redis"), key="COUNTER_BACKEND"),
        )
        if self.log_format is not None:
            _validate_choice(self.log_format, choices=("json", "console"), key="LOG_FORMAT")

        if self.redis_url:
            _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss"))
        if self.counter_backend == "redis" and not self.redis_url:
            raise ValueError("COUNTER_BACKEND=redis requires REDIS_URL")
        _validate_url(self.wa_api_base_url, key="WA_API_BASE_URL", allowed_schemes=("http", "https"))

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        # Key ring: 32-byte AES keys, hex encoded
        for version, hex_key in self.token_encryption_keys.items():
            try:
                raw = bytes.fromhex(hex_key)
            except ValueError:
                raise ValueError(f"Encryption key {version} must be hex encoded")
            if len(raw) != 32:
                raise ValueError(f"Encryption key {version} must be 32 bytes (64 hex chars)")
        if self.token_encryption_keys and self.token_encryption_key_version not in self.token_encryption_keys:
            raise ValueError("TOKEN_ENCRYPTION_KEY_VERSION must name a key in TOKEN_ENCRYPTION_KEYS")
        if self.environment == "prod" and not self.token_encryption_keys:
            raise ValueError("TOKEN_ENCRYPTION_KEYS must be set in prod")

        for key in (
            "wa_request_timeout_seconds",
            "global_limit_per_second",
            "global_limit_per_minute",
            "tenant_limit_per_minute",
            "channel_limit_per_second",
            "channel_limit_per_minute",
            "rate_window_seconds",
            "backoff_initial_ms",
            "backoff_max_ms",
            "retry_max_retries",
            "retry_poll_interval_seconds",
            "retry_batch_size",
            "reply_lock_timeout_seconds",
        ):
            _validate_positive(getattr(self, key), key=key.upper())

        if self.backoff_max_ms < self.backoff_initial_ms:
            raise ValueError("BACKOFF_MAX_MS must be >= BACKOFF_INITIAL_MS")
        if self.backoff_multiplier < 1:
            raise ValueError("BACKOFF_MULTIPLIER must be >= 1")
        if not self.retry_delays_seconds or any(d < 0 for d in self.retry_delays_seconds):
            raise ValueError("RETRY_DELAYS_SECONDS must be a non-empty list of non-negative integers")

        # Derived flags
        object.__setattr__(self, "is_prod", self.environment == "prod")
        object.__setattr__(self, "is_prod_like", self.environment in ("staging", "prod"))

    @property
    def effective_log_format(self) -> str:
        if self.log_format:
            return self.log_format
        return "json" if self.is_prod_like else "console"

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "log_level": self.log_level,
            "log_format": self.effective_log_format,
            "app_namespace": self.app_namespace,
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "counter_backend": self.counter_backend,
            "wa_api_base_url": self.wa_api_base_url,
            "wa_request_timeout_seconds": self.wa_request_timeout_seconds,
            "token_encryption_keys": {v: _mask_secret(k) for v, k in self.token_encryption_keys.items()},
            "token_encryption_key_version": self.token_encryption_key_version,
            "compliance_fail_open": self.compliance_fail_open,
            "global_limit_per_second": self.global_limit_per_second,
            "global_limit_per_minute": self.global_limit_per_minute,
            "tenant_limit_per_minute": self.tenant_limit_per_minute,
            "channel_limit_per_second": self.channel_limit_per_second,
            "channel_limit_per_minute": self.channel_limit_per_minute,
            "retry_delays_seconds": list(self.retry_delays_seconds),
            "retry_max_retries": self.retry_max_retries,
            "reply_lock_timeout_seconds": self.reply_lock_timeout_seconds,
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Attempt to load .env from repo root (../../.env relative to src/shared/)
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    settings = Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=cast(Optional[LogFormat], _get_env_str("LOG_FORMAT", None)),
        app_namespace=_get_env_str("APP_NAMESPACE", "dispatch") or "dispatch",
        redis_url=_get_env_str("REDIS_URL", None),
        counter_backend=cast(CounterBackend, _get_env_str("COUNTER_BACKEND", "memory") or "memory"),
        wa_api_base_url=_get_env_str("WA_API_BASE_URL", "https://graph.facebook.com/v21.0")
        or "https://graph.facebook.com/v21.0",
        wa_request_timeout_seconds=_get_env_float("WA_REQUEST_TIMEOUT_SECONDS", 15.0),
        token_encryption_keys=_parse_key_ring(_get_env_str("TOKEN_ENCRYPTION_KEYS", None)),
        token_encryption_key_version=_get_env_str("TOKEN_ENCRYPTION_KEY_VERSION", "v1") or "v1",
        compliance_fail_open=_get_env_bool("COMPLIANCE_FAIL_OPEN", True),
        global_limit_per_second=_get_env_int("GLOBAL_LIMIT_PER_SECOND", 200),
        global_limit_per_minute=_get_env_int("GLOBAL_LIMIT_PER_MINUTE", 10000),
        tenant_limit_per_minute=_get_env_int("TENANT_LIMIT_PER_MINUTE", 1000),
        channel_limit_per_second=_get_env_int("CHANNEL_LIMIT_PER_SECOND", 70),
        channel_limit_per_minute=_get_env_int("CHANNEL_LIMIT_PER_MINUTE", 3000),
        rate_window_seconds=_get_env_int("RATE_WINDOW_SECONDS", 60),
        backoff_initial_ms=_get_env_int("BACKOFF_INITIAL_MS", 1000),
        backoff_max_ms=_get_env_int("BACKOFF_MAX_MS", 60000),
        backoff_multiplier=_get_env_float("BACKOFF_MULTIPLIER", 2.0),
        backoff_ttl_seconds=_get_env_int("BACKOFF_TTL_SECONDS", 3600),
        consecutive_error_threshold=_get_env_int("CONSECUTIVE_ERROR_THRESHOLD", 10),
        error_stats_ttl_seconds=_get_env_int("ERROR_STATS_TTL_SECONDS", 3600),
        consecutive_error_ttl_seconds=_get_env_int("CONSECUTIVE_ERROR_TTL_SECONDS", 300),
        retry_delays_seconds=_get_env_int_tuple("RETRY_DELAYS_SECONDS", (60, 300, 900, 3600)),
        retry_max_retries=_get_env_int("RETRY_MAX_RETRIES", 4),
        retry_poll_interval_seconds=_get_env_float("RETRY_POLL_INTERVAL_SECONDS", 5.0),
        retry_batch_size=_get_env_int("RETRY_BATCH_SIZE", 20),
        retry_visibility_timeout_seconds=_get_env_int("RETRY_VISIBILITY_TIMEOUT_SECONDS", 120),
        reply_lock_timeout_seconds=_get_env_int("REPLY_LOCK_TIMEOUT_SECONDS", 60),
        lock_sweep_interval_seconds=_get_env_int("LOCK_SWEEP_INTERVAL_SECONDS", 30),
        sla_sweep_interval_seconds=_get_env_int("SLA_SWEEP_INTERVAL_SECONDS", 60),
        sla_at_risk_minutes=_get_env_int("SLA_AT_RISK_MINUTES", 15),
        rate_limit_cleanup_interval_seconds=_get_env_int("RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", 60),
    )

    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
