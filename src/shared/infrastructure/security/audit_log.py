"""
Audit Logging for Dispatch-Critical Operations
Best-effort, non-blocking audit trail for compliance
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, system_clock, to_datetime

logger = get_logger(__name__)

_PHONE_KEYS = {"phone", "wa_id", "recipient", "recipient_id", "to"}
_HIDDEN_KEYS = {"email", "name", "profile", "access_token", "token"}


def _mask_phone(value: Any) -> str:
    digits = str(value or "")
    if len(digits) <= 4:
        return "****"
    return f"****{digits[-4:]}"


def redact_pii(value: Any) -> Any:
    """Recursively mask phone-like keys and hide names, emails and tokens."""
    if isinstance(value, (list, tuple)):
        return [redact_pii(v) for v in value]
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, val in value.items():
            lower = str(key).lower()
            if lower in _PHONE_KEYS:
                redacted[key] = _mask_phone(val)
            elif lower in _HIDDEN_KEYS:
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = redact_pii(val)
        return redacted
    return value


@dataclass(frozen=True)
class AuditRecord:
    tenant_id: str
    action: str
    entity_type: str
    entity_id: str
    created_at: datetime
    status: str = "success"
    actor_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "status": self.status,
            "actor_id": self.actor_id,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


class AuditSink(Protocol):
    async def write(self, record: AuditRecord) -> None:
        ...


class LoggingAuditSink:
    """Writes audit records to the structured "audit" logger."""

    def __init__(self) -> None:
        self._log = get_logger("audit")

    async def write(self, record: AuditRecord) -> None:
        if record.status == "success":
            self._log.info(f"Audit: {record.action}", **record.to_dict())
        else:
            self._log.warning(f"Audit: {record.action}", **record.to_dict())


class InMemoryAuditSink:
    """Keeps records in process; queryable by entity or action."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    async def write(self, record: AuditRecord) -> None:
        self.records.append(record)

    def for_entity(self, entity_id: str) -> list[AuditRecord]:
        return [r for r in self.records if r.entity_id == entity_id]

    def by_action(self, action: str) -> list[AuditRecord]:
        return [r for r in self.records if r.action == action]

    def actions(self) -> list[str]:
        return [r.action for r in self.records]


class AuditLogger:
    """
    Centralized audit logger.

    `emit` never blocks and never raises: the record is handed to the sink
    in a background task whose failure is logged and dropped. Call `flush`
    on shutdown (and in tests) to wait for pending writes.
    """

    def __init__(self, sink: AuditSink, clock: Clock = system_clock) -> None:
        self._sink = sink
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    def emit(
        self,
        *,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any] | None = None,
        status: str = "success",
        actor_id: str | None = None,
    ) -> None:
        try:
            record = AuditRecord(
                tenant_id=str(tenant_id),
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                status=status,
                actor_id=actor_id,
                details=redact_pii(details or {}),
                created_at=to_datetime(self._clock()),
            )
            task = asyncio.get_running_loop().create_task(self._write(record))
        except Exception as e:
            logger.error("Audit emit failed", action=action, error=str(e), exc_info=True)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, record: AuditRecord) -> None:
        try:
            await self._sink.write(record)
        except Exception as e:
            logger.error(
                "Audit write failed",
                action=record.action,
                entity_id=record.entity_id,
                error=str(e),
                exc_info=True,
            )

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)
