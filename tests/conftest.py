import pytest
import pytest_asyncio

from shared.config import Settings
from shared.infrastructure.cache import InMemoryCounterStore
from shared.infrastructure.security.audit_log import InMemoryAuditSink

from messaging.bootstrap import Container
from messaging.domain.entities.tenant_policy import TenantPolicy
from messaging.domain.value_objects.governance import PlanTier
from tests.support import CHANNEL, TENANT, FakeClock, ScriptedGateway, make_container, make_settings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def store(clock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock)


@pytest_asyncio.fixture
async def container(clock, gateway, audit_sink, settings) -> Container:
    """Container with one BASIC-plan tenant and a stored channel token."""
    c = make_container(clock, gateway, audit_sink, settings)
    c.policies.set_policy(TenantPolicy(tenant_id=TENANT, plan=PlanTier.BASIC))
    await c.credentials.store_token(TENANT, CHANNEL, "EAAG-live-token", waba_id="waba-a")
    yield c
    await c.audit.flush()
