# src/messaging/domain/exceptions.py
"""
Messaging Domain Exceptions
"""
from __future__ import annotations

from typing import Any, Optional

from shared.exceptions import ConflictError, DomainError, NotFoundError, RateLimitedError, ValidationError
from shared.infrastructure.security.encryption import CredentialDecryptionError


class MessagingDomainError(DomainError):
    """Base exception for dispatch governor errors."""
    code = "messaging_error"


class InvalidRecipientError(MessagingDomainError, ValidationError):
    """Raised when a recipient phone number cannot be normalized."""
    code = "validation_error"


class CredentialNotFoundError(MessagingDomainError, NotFoundError):
    """Raised when a tenant has no channel credential configured."""
    code = "credential_not_found"


class CampaignNotFoundError(MessagingDomainError, NotFoundError):
    code = "campaign_not_found"


class DeadLetterNotFoundError(MessagingDomainError, NotFoundError):
    code = "dead_letter_not_found"


class CampaignPausedError(MessagingDomainError, ConflictError):
    """Raised when a send is refused because the owning campaign is paused."""
    code = "campaign_paused"


class LimitExceededError(MessagingDomainError, RateLimitedError):
    """Raised when a throughput ceiling or quota is reached."""
    code = "rate_limited"

    def __init__(self, message: str, *, level: str, kind: str, retry_after_seconds: int) -> None:
        super().__init__(
            message,
            details={"level": level, "kind": kind, "retry_after_seconds": retry_after_seconds},
        )
        self.level = level
        self.kind = kind
        self.retry_after_seconds = retry_after_seconds


class ProviderError(MessagingDomainError):
    """
    Error signal returned by the upstream messaging API.

    Attributes:
        http_status: HTTP status of the response (None for network failures)
        provider_code: Provider error code from the response body
        retry_after: Retry-After header in seconds, when present
        is_timeout: The call exceeded its deadline
        is_network: The call never got a response
    """
    code = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        provider_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        is_timeout: bool = False,
        is_network: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.http_status = http_status
        self.provider_code = provider_code
        self.retry_after = retry_after
        self.is_timeout = is_timeout
        self.is_network = is_network

    @classmethod
    def timeout(cls, message: str = "Provider call timed out") -> "ProviderError":
        return cls(message, is_timeout=True)

    @classmethod
    def network(cls, message: str) -> "ProviderError":
        return cls(message, is_network=True)

    def __repr__(self) -> str:
        return (
            f"ProviderError(http_status={self.http_status}, provider_code={self.provider_code}, "
            f"message={self.message!r})"
        )


__all__ = [
    "MessagingDomainError",
    "InvalidRecipientError",
    "CredentialNotFoundError",
    "CredentialDecryptionError",
    "CampaignNotFoundError",
    "DeadLetterNotFoundError",
    "CampaignPausedError",
    "LimitExceededError",
    "ProviderError",
]
