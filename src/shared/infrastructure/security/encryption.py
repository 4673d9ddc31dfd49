"""
Credential Vault
AES-256-GCM encryption of channel credentials at rest, with versioned keys
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from shared.config import Settings
from shared.exceptions import CryptoError
from shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

SCHEME = "enc"
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

_ENCRYPTED_RE = re.compile(r"^enc:[A-Za-z0-9_-]+:")


class CredentialDecryptionError(CryptoError):
    """Ciphertext could not be opened: tampered, wrong context, or unknown key version."""
    code = "crypto_error"


class CredentialVault:
    """
    Encrypts/decrypts long-lived channel credentials.

    Serialized form: ``enc:{version}:{b64 iv}:{b64 tag}:{b64 ciphertext}``.
    The AES key for each call is derived with HKDF-SHA256 from the versioned
    master key, using the context (tenant id) as HKDF info, so a ciphertext
    opened under another context fails authentication.

    Decryption selects the key matching the embedded version, so rotating
    the active version never invalidates stored secrets.

    Attributes:
        active_version: Version used for new encryptions
    """

    def __init__(self, keys: dict[str, bytes], active_version: str) -> None:
        if active_version not in keys:
            raise CryptoError(f"No encryption key for active version {active_version}")
        for version, key in keys.items():
            if len(key) != KEY_LENGTH:
                raise CryptoError(f"Encryption key {version} must be {KEY_LENGTH} bytes")
        self._keys = dict(keys)
        self.active_version = active_version

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialVault":
        """
        Build the vault from the configured key ring.

        Outside prod a missing key ring yields an ephemeral key, so tokens
        encrypted by this process cannot be read after a restart.
        """
        if settings.token_encryption_keys:
            keys = {v: bytes.fromhex(k) for v, k in settings.token_encryption_keys.items()}
            return cls(keys, settings.token_encryption_key_version)
        if settings.is_prod:
            raise CryptoError("TOKEN_ENCRYPTION_KEYS must be set in prod")
        logger.warning(
            "Using ephemeral credential key (NOT SECURE FOR PRODUCTION)",
            key_version=settings.token_encryption_key_version,
        )
        return cls({settings.token_encryption_key_version: secrets.token_bytes(KEY_LENGTH)},
                   settings.token_encryption_key_version)

    # ---------- key handling ----------

    def _derive(self, version: str, context: str) -> AESGCM:
        master = self._keys.get(version)
        if master is None:
            raise CredentialDecryptionError(
                f"No encryption key for version {version}",
                details={"key_version": version},
            )
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=None,
            info=(context or "default").encode("utf-8"),
        )
        return AESGCM(hkdf.derive(master))

    # ---------- operations ----------

    def encrypt(self, secret: str, context: str) -> str:
        """
        Encrypt a secret under the active key version.

        Args:
            secret: Plaintext credential
            context: Tenant id mixed into key derivation

        Returns:
            Serialized encrypted secret
        """
        if not secret:
            raise CryptoError("Secret value required for encryption")
        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._derive(self.active_version, context).encrypt(iv, secret.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            [
                SCHEME,
                self.active_version,
                base64.b64encode(iv).decode("ascii"),
                base64.b64encode(tag).decode("ascii"),
                base64.b64encode(ciphertext).decode("ascii"),
            ]
        )

    def decrypt(self, encrypted: str, context: str) -> str:
        """
        Decrypt a serialized secret.

        Raises:
            CredentialDecryptionError: malformed input, unknown key version,
                wrong context or tampered ciphertext
        """
        parts = (encrypted or "").split(":")
        if len(parts) != 5 or parts[0] != SCHEME:
            raise CredentialDecryptionError("Invalid encrypted secret format")
        _, version, iv_b64, tag_b64, ct_b64 = parts
        try:
            iv = base64.b64decode(iv_b64, validate=True)
            tag = base64.b64decode(tag_b64, validate=True)
            ciphertext = base64.b64decode(ct_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CredentialDecryptionError("Invalid encrypted secret encoding") from e
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise CredentialDecryptionError("Invalid encrypted secret format")

        aead = self._derive(version, context)
        try:
            plaintext = aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.warning("Credential decryption failed", key_version=version)
            raise CredentialDecryptionError(
                "Secret decryption failed - ciphertext corrupted, tampered or wrong context",
                details={"key_version": version},
            ) from e
        return plaintext.decode("utf-8")

    @staticmethod
    def is_encrypted(value: str | None) -> bool:
        return bool(value) and bool(_ENCRYPTED_RE.match(value or ""))

    @staticmethod
    def key_version(value: str | None) -> str | None:
        if not CredentialVault.is_encrypted(value):
            return None
        return (value or "").split(":")[1]

    def needs_reencryption(self, encrypted: str) -> bool:
        version = self.key_version(encrypted)
        return version is not None and version != self.active_version

    def reencrypt(self, encrypted: str, context: str) -> str:
        """Re-encrypt under the active key version. Idempotent."""
        if not self.needs_reencryption(encrypted):
            return encrypted
        return self.encrypt(self.decrypt(encrypted, context), context)


def hash_for_log(token: str | None) -> str:
    """First 8 hex chars of SHA-256; never log raw tokens."""
    if not token:
        return "null"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]
