"""
Structured Logging Configuration
Centralized structlog logger with tenant/campaign/message context and PII redaction
"""
from __future__ import annotations

import contextlib
import logging
import logging.config
import re
import sys
import time
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from shared.config import Settings


# ---------------------------------------------------------------------
# PII redaction
# ---------------------------------------------------------------------


class PIIRedactionProcessor:
    """
    Structlog processor to redact PII from strings inside event_dict (recursively).
    - Email: keep domain, redact local-part.
    - Phone/MSISDN (E.164 preferred): keep the first two and last 4 characters.
    """
    P_EMAIL = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
    P_MSISDN = re.compile(r"\+?[1-9]\d{7,14}")

    def __call__(self, logger, method_name, event_dict):
        return self._redact(event_dict)

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._redact(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._redact(v) for v in value]
        if isinstance(value, str):
            return self._redact_str(value)
        return value

    def _redact_str(self, s: str) -> str:
        s = self.P_EMAIL.sub(lambda m: f"***@{m.group(2)}", s)

        def _mask_msisdn(m: re.Match) -> str:
            g = m.group(0)
            return f"{g[:2]}****{g[-4:]}" if len(g) >= 6 else "***"

        return self.P_MSISDN.sub(_mask_msisdn, s)


def _passthrough(logger, method_name, event_dict):
    return event_dict


def configure_logging(settings: Settings) -> None:
    """
    Configure structured logging for the application.

    Sets up structlog with processors for:
    - Merging context variables (tenant_id, campaign_id, message_id, ...)
    - Adding timestamps and log levels
    - PII redaction outside of local/dev
    - JSON formatting (staging/prod) or console (local/dev)

    Args:
        settings: Loaded application settings
    """
    log_format = settings.effective_log_format
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": jsonlogger.JsonFormatter,
                    "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                },
                "console": {
                    "format": "%(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": log_format,
                    "stream": sys.stdout,
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "apscheduler": {"level": "WARNING"},
            },
        }
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        PIIRedactionProcessor() if settings.is_prod_like else _passthrough,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=not settings.is_prod_like))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger

    Usage:
        logger = get_logger(__name__)
        logger.info("Message sent", tenant_id=tenant_id, message_id=message_id)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to all subsequent log entries of the current task.

    Usage:
        bind_context(tenant_id=tenant_id, message_id=message_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextlib.contextmanager
def time_block(name: str, *, logger: structlog.stdlib.BoundLogger | None = None, labels: dict[str, str] | None = None):
    """
    Context manager to time a block and log it as a performance metric.

    Usage:
        with time_block("whatsapp.send", labels={"tenant": tenant_id}):
            await gateway.send_message(...)
    """
    _log = logger or structlog.get_logger("performance")
    t0 = time.perf_counter()
    try:
        yield
    finally:
        ms = (time.perf_counter() - t0) * 1000.0
        _log.debug("Performance metric", metric_name=name, value=ms, unit="ms", labels=labels or {})
