# src/messaging/domain/value_objects/phone_number.py
"""
Phone Number normalization
WhatsApp recipients are addressed by E.164 digits without the leading '+'
"""
from __future__ import annotations

import re

from messaging.domain.exceptions import InvalidRecipientError

_NON_DIGITS = re.compile(r"\D")
_E164_DIGITS = re.compile(r"^[1-9]\d{7,14}$")


def normalize_phone(value: str) -> str:
    """
    Canonical recipient key: digits only, no '+' or '00' prefix.

    Examples:
        >>> normalize_phone("+91 98765-43210")
        '919876543210'
        >>> normalize_phone("0044 20 7183 8750")
        '442071838750'
    """
    digits = _NON_DIGITS.sub("", value or "")
    if digits.startswith("00"):
        digits = digits[2:]
    if not _E164_DIGITS.match(digits):
        raise InvalidRecipientError(
            "Invalid phone number: must be 8-15 digits in international format",
            details={"length": len(digits)},
        )
    return digits
