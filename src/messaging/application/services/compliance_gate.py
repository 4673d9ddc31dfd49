"""Opt-out compliance gate consulted before every send."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from shared.domain.domain_event import DomainEvent
from shared.infrastructure.messaging.event_bus import EventBus
from shared.infrastructure.observability.logger import get_logger
from shared.infrastructure.security.audit_log import AuditLogger
from shared.utils.clock import Clock, system_clock, utcnow

from messaging.domain.entities.contact_consent import ContactConsent
from messaging.domain.protocols.consent_repository import ContactConsentRepository
from messaging.domain.value_objects.governance import ConsentSource
from messaging.domain.value_objects.phone_number import normalize_phone

logger = get_logger(__name__)

OPT_OUT_KEYWORDS = frozenset(
    {"stop", "unsubscribe", "opt out", "optout", "opt-out", "cancel", "quit", "end", "nope", "no thanks"}
)
OPT_IN_KEYWORDS = frozenset(
    {"start", "subscribe", "opt in", "optin", "opt-in", "resume", "unstop", "yes", "continue"}
)

TOPIC_OPTED_OUT = "contact.opted_out"
TOPIC_OPTED_IN = "contact.opted_in"

_SPACES = re.compile(r"\s+")


def _match(body: str, keywords: frozenset[str]) -> bool:
    normalized = _SPACES.sub(" ", (body or "").strip().lower())
    if not normalized:
        return False
    first_word = normalized.split(" ", 1)[0]
    return first_word in keywords or normalized in keywords


def is_opt_out_keyword(body: str) -> bool:
    return _match(body, OPT_OUT_KEYWORDS)


def is_opt_in_keyword(body: str) -> bool:
    return _match(body, OPT_IN_KEYWORDS)


@dataclass(frozen=True, slots=True)
class KeywordResult:
    """What an inbound message did to the sender's consent."""
    action: Optional[str]  # "opted_out", "opted_in" or None
    phone: str


class ComplianceGate:
    """
    Blocks sends to recipients that opted out.

    The opt-out flag is set by an inbound keyword, a webhook-reported
    status or a manual action, and cleared by an opt-in keyword or action.

    When the consent lookup itself fails, `is_blocked` returns
    `not fail_open`: with the default (fail open) the send is allowed.
    """

    def __init__(
        self,
        repo: ContactConsentRepository,
        event_bus: EventBus,
        audit: AuditLogger,
        *,
        fail_open: bool = True,
        clock: Clock = system_clock,
    ) -> None:
        self._repo = repo
        self._bus = event_bus
        self._audit = audit
        self.fail_open = fail_open
        self._clock = clock

    async def is_blocked(self, tenant_id: str, recipient: str) -> bool:
        phone = normalize_phone(recipient)
        try:
            consent = await self._repo.get(tenant_id, phone)
        except Exception as e:
            logger.error(
                "Consent lookup failed",
                tenant_id=tenant_id,
                fail_open=self.fail_open,
                error=str(e),
                exc_info=True,
            )
            return not self.fail_open
        return bool(consent and consent.opted_out)

    async def opt_out(
        self,
        tenant_id: str,
        recipient: str,
        *,
        source: ConsentSource,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ContactConsent:
        phone = normalize_phone(recipient)
        consent = await self._repo.get(tenant_id, phone) or ContactConsent(tenant_id=tenant_id, phone=phone)
        if consent.opted_out:
            return consent
        consent.opt_out(source, reason, utcnow(self._clock))
        await self._repo.save(consent)

        logger.info("Contact opted out", tenant_id=tenant_id, source=source.value)
        await self._bus.publish(
            DomainEvent(
                topic=TOPIC_OPTED_OUT,
                tenant_id=tenant_id,
                aggregate_id=phone,
                payload={"phone": phone, "source": source.value, "reason": reason},
            )
        )
        self._audit.emit(
            tenant_id=tenant_id,
            action="contact.opted_out",
            entity_type="contact",
            entity_id=phone,
            actor_id=actor_id,
            details={"phone": phone, "source": source.value, "reason": reason},
        )
        return consent

    async def opt_in(
        self,
        tenant_id: str,
        recipient: str,
        *,
        source: ConsentSource,
        actor_id: Optional[str] = None,
    ) -> ContactConsent:
        phone = normalize_phone(recipient)
        consent = await self._repo.get(tenant_id, phone) or ContactConsent(tenant_id=tenant_id, phone=phone)
        if not consent.opted_out:
            return consent
        consent.opt_in(source, utcnow(self._clock))
        await self._repo.save(consent)

        logger.info("Contact opted back in", tenant_id=tenant_id, source=source.value)
        await self._bus.publish(
            DomainEvent(
                topic=TOPIC_OPTED_IN,
                tenant_id=tenant_id,
                aggregate_id=phone,
                payload={"phone": phone, "source": source.value},
            )
        )
        self._audit.emit(
            tenant_id=tenant_id,
            action="contact.opted_in",
            entity_type="contact",
            entity_id=phone,
            actor_id=actor_id,
            details={"phone": phone, "source": source.value},
        )
        return consent

    async def process_inbound(self, tenant_id: str, sender: str, body: str) -> KeywordResult:
        """Apply opt-out / opt-in keywords found in an inbound message."""
        phone = normalize_phone(sender)
        if is_opt_out_keyword(body):
            consent = await self._repo.get(tenant_id, phone)
            if consent and consent.opted_out:
                return KeywordResult(None, phone)
            await self.opt_out(tenant_id, phone, source=ConsentSource.KEYWORD, reason=body.strip()[:64])
            return KeywordResult("opted_out", phone)
        if is_opt_in_keyword(body):
            consent = await self._repo.get(tenant_id, phone)
            if not consent or not consent.opted_out:
                return KeywordResult(None, phone)
            await self.opt_in(tenant_id, phone, source=ConsentSource.KEYWORD)
            return KeywordResult("opted_in", phone)
        return KeywordResult(None, phone)

    async def opted_out_count(self, tenant_id: str) -> int:
        return await self._repo.count_opted_out(tenant_id)
