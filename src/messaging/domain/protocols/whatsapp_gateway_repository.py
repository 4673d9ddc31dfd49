"""
WhatsApp Gateway Protocol
Abstracts the upstream messaging API.
"""
from abc import abstractmethod
from typing import Protocol, Dict, Any

from messaging.domain.value_objects.message_status import MessageType


class WhatsAppGateway(Protocol):
    """
    Protocol for the WhatsApp Cloud API.

    Implementations raise ProviderError for every failed call (HTTP error,
    provider error body, timeout, network failure) and never return a
    partial result.
    """

    @abstractmethod
    async def send_message(
        self,
        *,
        channel_id: str,
        access_token: str,
        to: str,
        message_type: MessageType,
        payload: Dict[str, Any],
    ) -> str:
        """Send one message and return the provider message id."""
        ...

    @abstractmethod
    async def submit_template(
        self, *, waba_id: str, access_token: str, template: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Submit a new template for approval."""
        ...
