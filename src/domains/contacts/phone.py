# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian phone number validation and normalization.

Accepted formats (Venezuelan mobile and landline ranges starting with 2 or 4):
- +58XXXXXXXXXX (international)
- 0XXXXXXXXXX (national, leading zero)
- XXXXXXXXXX (bare ten digits)

Spaces, dashes and parentheses are ignored. The canonical form is the
international one, e.g. "+584241234567".

Example:
    >>> validate_phone("0424-123.4567")
    False
    >>> validate_phone("0424 123 4567")
    True
    >>> normalize_phone("0424 123 4567")
    '+584241234567'
"""

import re

DEFAULT_COUNTRY_CODE = "58"

_SEPARATORS = re.compile(r"[\s\-()]")


def _patterns(country_code: str) -> tuple[re.Pattern[str], ...]:
    code = re.escape(country_code)
    return (
        re.compile(rf"^\+{code}[24]\d{{9}}$"),
        re.compile(r"^0[24]\d{9}$"),
        re.compile(r"^[24]\d{9}$"),
    )


def clean_phone(phone: str | None) -> str:
    """Strip separators from a phone string.

    Args:
        phone: Raw phone string as typed by staff.

    Returns:
        The phone without spaces, dashes or parentheses.
    """
    if not phone:
        return ""
    return _SEPARATORS.sub("", phone)


def validate_phone(phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> bool:
    """Check whether a phone matches one of the accepted formats.

    Never raises; empty or malformed input is simply invalid.

    Args:
        phone: Raw phone string.
        country_code: International dialing code without "+".

    Returns:
        True if the phone can be used for delivery.
    """
    cleaned = clean_phone(phone)
    if not cleaned:
        return False
    return any(pattern.match(cleaned) for pattern in _patterns(country_code))


def normalize_phone(phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Canonicalize a phone to the international form.

    Already-prefixed input passes through (separators removed), so
    normalizing twice yields the same string.

    Input that matches no known format is returned cleaned but without
    a prefix. Callers must validate before delivering; normalize() is
    best effort only.

    Args:
        phone: Raw phone string.
        country_code: International dialing code without "+".

    Returns:
        Canonical "+<code>..." string, or the cleaned input.
    """
    cleaned = clean_phone(phone)
    if not cleaned:
        return ""

    prefix = f"+{country_code}"
    if cleaned.startswith(prefix):
        return cleaned

    if cleaned.startswith("0"):
        return prefix + cleaned[1:]

    if re.match(r"^[24]\d{9}$", cleaned):
        return prefix + cleaned

    return cleaned


class PhoneNormalizer:
    """Phone rules bound to a configured country code.

    Attributes:
        country_code: International dialing code without "+".
    """

    def __init__(self, country_code: str = DEFAULT_COUNTRY_CODE) -> None:
        self.country_code = country_code

    def validate(self, phone: str | None) -> bool:
        return validate_phone(phone, self.country_code)

    def normalize(self, phone: str | None) -> str:
        return normalize_phone(phone, self.country_code)
