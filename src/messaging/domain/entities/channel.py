"""
Channel Credential Entity
A tenant's sending identity and its encrypted long-lived access token.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class ChannelCredential:
    """
    Channel record consumed by the dispatcher.

    Only ciphertext is ever stored here; the plaintext token lives on the
    stack of a single send attempt.

    Attributes:
        tenant_id: Owning tenant (also the encryption context)
        channel_id: Provider phone-number id used as the sender
        encrypted_token: Serialized EncryptedSecret (enc:{version}:...)
        waba_id: Business account id, used for template submissions
    """
    tenant_id: str
    channel_id: str
    encrypted_token: str
    waba_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def key_version(self) -> Optional[str]:
        parts = (self.encrypted_token or "").split(":")
        if len(parts) >= 2 and parts[0] == "enc":
            return parts[1]
        return None
