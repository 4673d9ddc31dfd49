"""Channel credential access: decrypt on demand, rotate, store."""

from __future__ import annotations

from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger
from shared.infrastructure.security.encryption import CredentialVault, hash_for_log
from shared.utils.clock import Clock, system_clock, utcnow

from messaging.domain.entities.channel import ChannelCredential
from messaging.domain.exceptions import CredentialNotFoundError
from messaging.domain.protocols.channel_repository import ChannelCredentialRepository

logger = get_logger(__name__)


class CredentialService:
    """
    Reads and maintains tenants' channel credentials.

    The tenant id is the encryption context. Plaintext tokens are returned
    to the caller for one send attempt and never cached, so a rotated
    credential is picked up by the very next call (including retries).
    """

    def __init__(
        self,
        repo: ChannelCredentialRepository,
        vault: CredentialVault,
        audit: AuditLogger,
        clock: Clock = system_clock,
    ) -> None:
        self._repo = repo
        self._vault = vault
        self._audit = audit
        self._clock = clock

    async def get_channel(self, tenant_id: str) -> ChannelCredential:
        channel = await self._repo.get_for_tenant(tenant_id)
        if channel is None:
            raise CredentialNotFoundError(f"No channel configured for tenant {tenant_id}")
        return channel

    async def current_token(self, tenant_id: str) -> tuple[ChannelCredential, str]:
        """
        Load the tenant's channel and decrypt its access token.

        Raises:
            CredentialNotFoundError: tenant has no channel
            CredentialDecryptionError: stored ciphertext cannot be opened
        """
        channel = await self.get_channel(tenant_id)
        if self._vault.is_encrypted(channel.encrypted_token):
            token = self._vault.decrypt(channel.encrypted_token, tenant_id)
        else:
            # legacy plaintext record; rotate() encrypts it
            logger.warning("Channel token stored unencrypted", tenant_id=tenant_id)
            token = channel.encrypted_token
        self._audit.emit(
            tenant_id=tenant_id,
            action="credential.decrypted",
            entity_type="channel",
            entity_id=channel.channel_id,
            details={"key_version": channel.key_version, "token_hash": hash_for_log(token)},
        )
        return channel, token

    async def rotate(self, tenant_id: str) -> bool:
        """Re-encrypt under the active key version. Returns True if anything changed."""
        channel = await self.get_channel(tenant_id)
        current = channel.encrypted_token
        if self._vault.is_encrypted(current):
            if not self._vault.needs_reencryption(current):
                return False
            channel.encrypted_token = self._vault.reencrypt(current, tenant_id)
        else:
            channel.encrypted_token = self._vault.encrypt(current, tenant_id)
        channel.updated_at = utcnow(self._clock)
        await self._repo.save(channel)

        logger.info(
            "Channel credential re-encrypted",
            tenant_id=tenant_id,
            key_version=self._vault.active_version,
        )
        self._audit.emit(
            tenant_id=tenant_id,
            action="credential.rotated",
            entity_type="channel",
            entity_id=channel.channel_id,
            details={"key_version": self._vault.active_version},
        )
        return True

    async def rotate_all(self) -> int:
        rotated = 0
        for channel in await self._repo.list_all():
            if await self.rotate(channel.tenant_id):
                rotated += 1
        return rotated

    async def store_token(
        self, tenant_id: str, channel_id: str, plaintext: str, waba_id: str | None = None
    ) -> ChannelCredential:
        channel = ChannelCredential(
            tenant_id=tenant_id,
            channel_id=channel_id,
            encrypted_token=self._vault.encrypt(plaintext, tenant_id),
            waba_id=waba_id,
            updated_at=utcnow(self._clock),
        )
        await self._repo.save(channel)
        self._audit.emit(
            tenant_id=tenant_id,
            action="credential.stored",
            entity_type="channel",
            entity_id=channel_id,
            details={"key_version": self._vault.active_version},
        )
        return channel
