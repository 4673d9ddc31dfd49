"""Test doubles and builders shared by the suites."""
import asyncio
import os
from typing import Any, Optional

import pytest

from shared.config import Settings
from shared.infrastructure.cache import InMemoryCounterStore
from shared.infrastructure.security.audit_log import InMemoryAuditSink

from messaging.bootstrap import Container, build_container
from messaging.domain.exceptions import ProviderError
from messaging.infrastructure.repositories.retry_job_store_impl import InMemoryRetryJobStore

TEST_KEY_V1 = "11" * 32
TEST_KEY_V2 = "22" * 32

TENANT = "tenant-a"
CHANNEL = "chan-a"
RECIPIENT = "919876543210"


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedGateway:
    """
    Provider double. Each send pops the next scripted outcome: a
    ProviderError is raised, anything else is returned as the message id.
    An empty script succeeds. A non-zero `delay` suspends every send so
    concurrent dispatches overlap on the provider call.
    """

    def __init__(self, *outcomes: Any, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.sent: list[dict[str, Any]] = []
        self.templates: list[dict[str, Any]] = []
        self._counter = 0

    def script(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    async def send_message(self, *, channel_id, access_token, to, message_type, payload) -> str:
        self.sent.append(
            {"channel_id": channel_id, "access_token": access_token, "to": to, "type": message_type, "payload": payload}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return str(outcome)
        self._counter += 1
        return f"wamid.{self._counter}"

    async def submit_template(self, *, waba_id, access_token, template) -> dict:
        self.templates.append({"waba_id": waba_id, "access_token": access_token, "template": template})
        if self.outcomes and isinstance(self.outcomes[0], Exception):
            raise self.outcomes.pop(0)
        return {"id": f"tpl-{len(self.templates)}", "status": "PENDING"}


def http_error(status: int, code: Optional[int] = None, retry_after: Optional[int] = None) -> ProviderError:
    return ProviderError(f"HTTP {status}", http_status=status, provider_code=code, retry_after=retry_after)


def make_settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {
        "environment": "local",
        "token_encryption_keys": {"v1": TEST_KEY_V1},
        "token_encryption_key_version": "v1",
    }
    base.update(overrides)
    return Settings(**base)


def make_container(
    clock: FakeClock,
    gateway: ScriptedGateway,
    sink: InMemoryAuditSink,
    settings: Optional[Settings] = None,
) -> Container:
    return build_container(
        settings or make_settings(),
        clock=clock,
        gateway=gateway,
        store=InMemoryCounterStore(clock),
        retry_store=InMemoryRetryJobStore(),
        audit_sink=sink,
    )


def require_test_redis() -> str:
    url = os.getenv("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set; skipping Redis-dependent tests")
    return url
