"""
WhatsApp Cloud API Gateway Implementation
httpx client with a circuit breaker; every failure surfaces as ProviderError
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from httpx import AsyncClient, HTTPStatusError, RequestError, TimeoutException

from shared.infrastructure.observability.logger import get_logger
from shared.utils.clock import Clock, system_clock

from messaging.domain.exceptions import ProviderError
from messaging.domain.value_objects.message_status import MessageType

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """
    Circuit breaker for provider calls.

    Only transport failures and 5xx responses count as failures; a 4xx is
    the provider answering, not the provider being down.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60, clock: Clock = system_clock):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._clock = clock

    def before_call(self) -> None:
        if self.state != CircuitState.OPEN:
            return
        if self._should_attempt_reset():
            self.state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker entering HALF_OPEN state")
            return
        raise ProviderError.network("Circuit breaker OPEN - WhatsApp API unavailable")

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return self._clock() - self.last_failure_time >= self.recovery_timeout

    def on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker recovered - entering CLOSED state")
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.error(f"Circuit breaker OPEN after {self.failure_count} failures")
            self.state = CircuitState.OPEN


class WhatsAppCloudGateway:
    """
    WhatsApp Cloud API gateway.

    Makes exactly one HTTP call per send: retries, backoff and campaign
    pausing are decided by the dispatcher from the raised ProviderError.
    """

    def __init__(
        self,
        base_url: str = "https://graph.facebook.com/v21.0",
        timeout: float = 15.0,
        client: Optional[AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=100, max_connections=200),
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    async def send_message(
        self,
        *,
        channel_id: str,
        access_token: str,
        to: str,
        message_type: MessageType,
        payload: Dict[str, Any],
    ) -> str:
        """
        Send a message and return the provider message id.

        Raises:
            ProviderError: HTTP error, provider error body, timeout or network failure
        """
        body = self._build_payload(to=to, message_type=message_type, content=payload)
        data = await self._request("POST", f"{self.base_url}/{channel_id}/messages", body, access_token)
        messages = data.get("messages") or []
        first = messages[0] if isinstance(messages, list) and messages else None
        if not isinstance(first, dict) or not first.get("id"):
            raise ProviderError("Provider response carried no message id", details={"response": data})
        return str(first["id"])

    async def submit_template(self, *, waba_id: str, access_token: str, template: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a message template for provider approval."""
        if not waba_id:
            raise ProviderError("Channel has no business account id for template submission")
        return await self._request("POST", f"{self.base_url}/{waba_id}/message_templates", template, access_token)

    def _build_payload(self, to: str, message_type: MessageType, content: Dict[str, Any]) -> Dict[str, Any]:
        kind = message_type.value if isinstance(message_type, MessageType) else str(message_type)
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": kind,
        }
        # Accept either {"text": {...}} or the bare type body
        if kind in content:
            payload.update(content)
        else:
            payload[kind] = content
        return payload

    async def _request(
        self, method: str, url: str, payload: Optional[Dict[str, Any]], access_token: str
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        self.circuit_breaker.before_call()
        try:
            response = await self.client.request(method, url, json=payload, headers=headers)
            response.raise_for_status()
        except HTTPStatusError as e:
            if e.response.status_code >= 500:
                self.circuit_breaker.on_failure()
            else:
                self.circuit_breaker.on_success()
            raise self._to_provider_error(e.response) from e
        except TimeoutException as e:
            self.circuit_breaker.on_failure()
            logger.warning("WhatsApp API timeout", url=url)
            raise ProviderError.timeout(f"WhatsApp API timeout: {e}") from e
        except RequestError as e:
            self.circuit_breaker.on_failure()
            logger.error(f"Network error calling WhatsApp API: {e}")
            raise ProviderError.network(f"Network error: {e}") from e

        self.circuit_breaker.on_success()
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Provider returned a non-JSON body", http_status=response.status_code) from e
        if not isinstance(data, dict):
            raise ProviderError(
                "Provider returned an unexpected JSON body",
                http_status=response.status_code,
                details={"response": data},
            )
        return data

    def _to_provider_error(self, response: httpx.Response) -> ProviderError:
        error_data = self._parse_error_response(response)
        raw_code = error_data.get("code")
        try:
            provider_code = int(raw_code) if raw_code is not None else None
        except (TypeError, ValueError):
            provider_code = None
        message = str(error_data.get("message") or f"HTTP {response.status_code}")
        logger.warning(
            "WhatsApp API error",
            status_code=response.status_code,
            error_code=provider_code,
            error_message=message,
        )
        return ProviderError(
            message,
            http_status=response.status_code,
            provider_code=provider_code,
            retry_after=self._get_retry_after(response),
            details={"error_subcode": error_data.get("error_subcode"), "fbtrace_id": error_data.get("fbtrace_id")},
        )

    def _parse_error_response(self, response: httpx.Response) -> Dict[str, Any]:
        """Parse error response from WhatsApp API."""
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text[:200]}
        error = data.get("error") if isinstance(data, dict) else data
        if isinstance(error, dict):
            return error
        return {"message": str(error)[:200]} if error else {}

    def _get_retry_after(self, response: httpx.Response) -> Optional[int]:
        """Retry-After in seconds, from delta-seconds or an HTTP date."""
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            return None
        try:
            return max(0, int(retry_after))
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError):
            return None
        return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))

    async def close(self):
        """Close the HTTP client connection pool."""
        await self.client.aclose()
        logger.info("WhatsApp gateway client closed")
