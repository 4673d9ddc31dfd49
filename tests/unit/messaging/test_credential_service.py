import pytest

from shared.infrastructure.security.audit_log import AuditLogger, InMemoryAuditSink
from shared.infrastructure.security.encryption import CredentialDecryptionError, CredentialVault

from messaging.application.services.credential_service import CredentialService
from messaging.domain.entities.channel import ChannelCredential
from messaging.domain.exceptions import CredentialNotFoundError
from messaging.infrastructure.repositories.channel_repository_impl import InMemoryChannelCredentialRepository
from tests.support import CHANNEL, TENANT, TEST_KEY_V1, TEST_KEY_V2

V1 = {"v1": bytes.fromhex(TEST_KEY_V1)}
V1_V2 = {"v1": bytes.fromhex(TEST_KEY_V1), "v2": bytes.fromhex(TEST_KEY_V2)}


@pytest.fixture
def sink():
    return InMemoryAuditSink()


@pytest.fixture
def repo():
    return InMemoryChannelCredentialRepository()


def service(repo, sink, clock, vault, audit=None):
    return CredentialService(repo, vault, audit or AuditLogger(sink, clock), clock)


async def test_stored_token_is_encrypted_and_audited(repo, sink, clock):
    audit = AuditLogger(sink, clock)
    creds = service(repo, sink, clock, CredentialVault(V1, "v1"), audit)
    await creds.store_token(TENANT, CHANNEL, "EAAG-live-token")

    stored = await repo.get_for_tenant(TENANT)
    assert stored.key_version == "v1"
    assert "EAAG-live-token" not in stored.encrypted_token

    channel, token = await creds.current_token(TENANT)
    assert channel.channel_id == CHANNEL
    assert token == "EAAG-live-token"

    await audit.flush()
    decrypted = sink.by_action("credential.decrypted")
    assert len(decrypted) == 1
    assert "EAAG-live-token" not in str(decrypted[0].details)


async def test_missing_channel(repo, sink, clock):
    creds = service(repo, sink, clock, CredentialVault(V1, "v1"))
    with pytest.raises(CredentialNotFoundError):
        await creds.current_token(TENANT)


async def test_rotation_to_new_key_version(repo, sink, clock):
    await service(repo, sink, clock, CredentialVault(V1, "v1")).store_token(TENANT, CHANNEL, "EAAG-live-token")

    rotated = service(repo, sink, clock, CredentialVault(V1_V2, "v2"))
    assert await rotated.rotate_all() == 1
    assert (await repo.get_for_tenant(TENANT)).key_version == "v2"
    assert not await rotated.rotate(TENANT)

    _, token = await rotated.current_token(TENANT)
    assert token == "EAAG-live-token"


async def test_legacy_plaintext_is_readable_and_encrypted_on_rotate(repo, sink, clock):
    await repo.save(ChannelCredential(tenant_id=TENANT, channel_id=CHANNEL, encrypted_token="EAAG-legacy"))
    creds = service(repo, sink, clock, CredentialVault(V1, "v1"))

    _, token = await creds.current_token(TENANT)
    assert token == "EAAG-legacy"

    assert await creds.rotate(TENANT)
    stored = await repo.get_for_tenant(TENANT)
    assert stored.key_version == "v1"
    _, token = await creds.current_token(TENANT)
    assert token == "EAAG-legacy"


async def test_ciphertext_from_another_tenant_is_rejected(repo, sink, clock):
    vault = CredentialVault(V1, "v1")
    await repo.save(
        ChannelCredential(tenant_id=TENANT, channel_id=CHANNEL, encrypted_token=vault.encrypt("EAAG", "tenant-b"))
    )
    with pytest.raises(CredentialDecryptionError):
        await service(repo, sink, clock, vault).current_token(TENANT)
