import asyncio

import pytest
from fastapi.testclient import TestClient

from shared.infrastructure.security.audit_log import InMemoryAuditSink

from messaging.domain.entities.tenant_policy import SlaSettings, TenantPolicy
from messaging.domain.value_objects.governance import PlanTier
from messaging.main import create_app
from tests.support import CHANNEL, RECIPIENT, TENANT, FakeClock, ScriptedGateway, http_error, make_container, make_settings


@pytest.fixture
def api():
    clock = FakeClock()
    gateway = ScriptedGateway()
    settings = make_settings()
    container = make_container(clock, gateway, InMemoryAuditSink(), settings)
    container.policies.set_policy(
        TenantPolicy(tenant_id=TENANT, plan=PlanTier.BASIC, sla=SlaSettings(enabled=True, first_response_minutes=30))
    )

    async def seed():
        await container.credentials.store_token(TENANT, CHANNEL, "EAAG-live-token", waba_id="waba-a")
        await container.audit.flush()

    asyncio.run(seed())
    with TestClient(create_app(settings, container, run_background=False)) as client:
        yield client, container, gateway, clock


def send(client, **overrides):
    body = {"tenant_id": TENANT, "recipient": RECIPIENT, "payload": {"body": "hello"}}
    body.update(overrides)
    return client.post("/api/v1/messages/send", json=body)


def test_health(api):
    client, *_ = api
    assert client.get("/_health/live").json() == {"status": "ok"}
    assert client.get("/_health/store").json()["ok"] is True


def test_send_message(api):
    client, _, gateway, _ = api
    response = send(client)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "sent"
    assert body["provider_message_id"] == "wamid.1"
    assert response.headers["X-Request-ID"]
    assert gateway.sent[0]["to"] == RECIPIENT


def test_request_id_is_echoed(api):
    client, *_ = api
    response = client.get("/_health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_validation_errors_use_the_error_contract(api):
    client, *_ = api
    response = client.post("/api/v1/messages/send", json={"tenant_id": TENANT, "recipient": RECIPIENT})

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["message"]
    assert body["details"]["errors"]


def test_unparseable_recipient_is_a_validation_error(api):
    client, *_ = api
    response = send(client, recipient="phone-number")
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_stop_keyword_blocks_further_sends(api):
    client, *_ = api
    inbound = client.post(
        "/api/v1/messages/inbound",
        json={"tenant_id": TENANT, "conversation_id": "conv-1", "sender": f"+{RECIPIENT}", "body": "STOP"},
    )
    assert inbound.status_code == 200
    assert inbound.json()["consent_action"] == "opted_out"
    assert inbound.json()["sla_deadline"] is not None

    assert send(client).json()["status"] == "compliance_blocked"

    opt_in = client.post("/api/v1/contacts/opt-in", json={"tenant_id": TENANT, "phone": RECIPIENT})
    assert opt_in.json() == {"tenant_id": TENANT, "phone": RECIPIENT, "opted_out": False}
    assert send(client).json()["status"] == "sent"


def test_manual_opt_out(api):
    client, *_ = api
    response = client.post(
        "/api/v1/contacts/opt-out",
        json={"tenant_id": TENANT, "phone": RECIPIENT, "reason": "asked by phone"},
        headers={"X-Actor-Id": "agent-1"},
    )
    assert response.json()["opted_out"] is True
    assert send(client).json()["status"] == "compliance_blocked"


def test_reply_lock_lifecycle(api):
    client, *_ = api
    url = "/api/v1/conversations/conv-1/reply-lock"

    first = client.post(url, json={"tenant_id": TENANT, "holder_id": "agent-1"}).json()
    assert first["acquired"] is True

    second = client.post(url, json={"tenant_id": TENANT, "holder_id": "agent-2"}).json()
    assert second["acquired"] is False
    assert second["current_holder"] == "agent-1"

    status = client.get(url).json()
    assert status["locked"] is True
    assert status["holder_id"] == "agent-1"
    assert status["remaining_seconds"] == 60

    assert client.delete(url, params={"tenant_id": TENANT, "holder_id": "agent-2"}).json() == {"released": False}
    assert client.delete(url, params={"tenant_id": TENANT, "holder_id": "agent-1"}).json() == {"released": True}
    assert client.get(url).json()["locked"] is False


def test_agent_reply_clears_first_response_sla(api):
    client, *_ = api
    client.post(
        "/api/v1/messages/inbound",
        json={"tenant_id": TENANT, "conversation_id": "conv-1", "sender": RECIPIENT, "body": "hi there"},
    )
    assert client.get("/api/v1/sla/stats", params={"tenant_id": TENANT}).json()["awaiting_response"] == 1

    client.post(
        "/api/v1/messages/send",
        json={"tenant_id": TENANT, "recipient": RECIPIENT, "payload": {"body": "hello"}, "conversation_id": "conv-1"},
        headers={"X-Actor-Id": "agent-1"},
    )
    stats = client.get("/api/v1/sla/stats", params={"tenant_id": TENANT}).json()
    assert stats["awaiting_response"] == 0


def test_breached_conversations_are_listed(api):
    client, container, _, clock = api
    client.post(
        "/api/v1/messages/inbound",
        json={"tenant_id": TENANT, "conversation_id": "conv-1", "sender": RECIPIENT, "body": "hello?"},
    )
    clock.advance(31 * 60)
    assert client.portal.call(container.sla.sweep_breaches) == ["conv-1"]

    (breach,) = client.get("/api/v1/sla/breaches", params={"tenant_id": TENANT}).json()
    assert breach["conversation_id"] == "conv-1"
    assert breach["priority"] == "normal"
    assert client.get("/api/v1/sla/stats", params={"tenant_id": TENANT}).json()["breached"] == 1


def test_campaign_pause_and_resume(api):
    client, _, gateway, _ = api
    gateway.script(http_error(401, code=190))
    assert send(client, campaign_id="camp-1").json()["error_code"] == "CREDENTIAL_INVALID"

    state = client.get("/api/v1/campaigns/camp-1").json()
    assert state["status"] == "paused"
    assert state["paused_reason"] == "CREDENTIAL_INVALID"
    assert send(client, campaign_id="camp-1").json()["status"] == "campaign_paused"

    resumed = client.post("/api/v1/campaigns/camp-1/resume", headers={"X-Actor-Id": "ops-1"}).json()
    assert resumed["status"] == "running"
    assert resumed["errors"]["consecutive"] == 0
    assert send(client, campaign_id="camp-1").json()["status"] == "sent"


def test_unknown_campaign_is_not_found(api):
    client, *_ = api
    response = client.get("/api/v1/campaigns/nope")
    assert response.status_code == 404
    assert response.json()["code"] == "campaign_not_found"


def test_quota_status(api):
    client, *_ = api
    send(client)
    quota = client.get(f"/api/v1/tenants/{TENANT}/quota").json()
    assert quota["plan"] == "basic"
    assert quota["limits"]["messages_per_second"] == 10
    assert quota["usage"]["messages_today"] == 1


def test_retry_endpoints(api):
    client, _, gateway, _ = api
    gateway.script(http_error(500))
    assert send(client).json()["status"] == "queued_for_retry"

    stats = client.get("/api/v1/retry/stats").json()
    assert stats["pending"] == 1
    assert stats["delays_seconds"] == [60, 300, 900, 3600]
    assert client.get("/api/v1/retry/dead-letters", params={"tenant_id": TENANT}).json() == []

    missing = client.post("/api/v1/retry/dead-letters/nope/resend")
    assert missing.status_code == 404
    assert missing.json()["code"] == "dead_letter_not_found"


def test_template_submission(api):
    client, _, gateway, _ = api
    response = client.post(
        "/api/v1/templates/submit",
        json={"tenant_id": TENANT, "template": {"name": "welcome", "language": "en"}},
    )
    assert response.status_code == 202
    assert response.json()["status"] == "PENDING"
    assert gateway.templates[0]["waba_id"] == "waba-a"
