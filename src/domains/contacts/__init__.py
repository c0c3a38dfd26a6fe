# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian contact domain package.

This package provides phone number rules for guardian contacts:
- validate_phone: Check a phone against the accepted formats
- normalize_phone: Canonicalize a phone to the international form
- PhoneNormalizer: Both operations bound to a configured country code
"""

from src.domains.contacts.phone import (
    DEFAULT_COUNTRY_CODE,
    PhoneNormalizer,
    clean_phone,
    normalize_phone,
    validate_phone,
)

__all__ = [
    "DEFAULT_COUNTRY_CODE",
    "PhoneNormalizer",
    "clean_phone",
    "normalize_phone",
    "validate_phone",
]
