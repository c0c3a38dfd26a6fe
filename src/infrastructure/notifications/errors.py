# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Delivery error taxonomy.

Failures are classified by an explicit ErrorKind attached where the
failure happens (the transport raises DeliveryError(kind=...)), never by
matching substrings of error messages. Built-in network exceptions are
mapped to kinds so that transports built on plain sockets or httpx work
without wrapping every call.
"""

from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """What went wrong during a delivery attempt."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    TEMPORARY_UNAVAILABLE = "TEMPORARY_UNAVAILABLE"
    CONNECTION_RESET = "CONNECTION_RESET"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AUTH_ERROR = "AUTH_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    REJECTED = "REJECTED"
    UNKNOWN = "UNKNOWN"


class ErrorCategory(str, Enum):
    """Statistics bucket for error kinds."""

    NETWORK_ERRORS = "NETWORK_ERRORS"
    TIMEOUT_ERRORS = "TIMEOUT_ERRORS"
    RATE_LIMIT_ERRORS = "RATE_LIMIT_ERRORS"
    AUTH_ERRORS = "AUTH_ERRORS"
    VALIDATION_ERRORS = "VALIDATION_ERRORS"
    SERVER_ERRORS = "SERVER_ERRORS"
    OTHER_ERRORS = "OTHER_ERRORS"


class HealthStatus(str, Enum):
    """Delivery subsystem health."""

    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMITED,
        ErrorKind.TEMPORARY_UNAVAILABLE,
        ErrorKind.CONNECTION_RESET,
        ErrorKind.SERVICE_UNAVAILABLE,
    }
)

_CATEGORY_BY_KIND: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.NETWORK_ERROR: ErrorCategory.NETWORK_ERRORS,
    ErrorKind.CONNECTION_RESET: ErrorCategory.NETWORK_ERRORS,
    ErrorKind.TIMEOUT: ErrorCategory.TIMEOUT_ERRORS,
    ErrorKind.RATE_LIMITED: ErrorCategory.RATE_LIMIT_ERRORS,
    ErrorKind.AUTH_ERROR: ErrorCategory.AUTH_ERRORS,
    ErrorKind.VALIDATION_ERROR: ErrorCategory.VALIDATION_ERRORS,
    ErrorKind.SERVER_ERROR: ErrorCategory.SERVER_ERRORS,
    ErrorKind.SERVICE_UNAVAILABLE: ErrorCategory.SERVER_ERRORS,
    ErrorKind.TEMPORARY_UNAVAILABLE: ErrorCategory.SERVER_ERRORS,
}


class DeliveryError(Exception):
    """Failure raised by a message transport.

    Attributes:
        kind: Classified failure kind.
        message: Human-readable description.
    """

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        """Initialize the delivery error.

        Args:
            kind: Classified failure kind.
            message: Human-readable description.
        """
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    @property
    def retryable(self) -> bool:
        """Whether another attempt may succeed."""
        return self.kind in RETRYABLE_KINDS


def classify_exception(error: BaseException) -> ErrorKind:
    """Map an exception to an ErrorKind.

    Args:
        error: Exception raised by a delivery attempt.

    Returns:
        The attached kind for DeliveryError, a mapped kind for known
        network exceptions, UNKNOWN otherwise.
    """
    if isinstance(error, DeliveryError):
        return error.kind
    if isinstance(error, (TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(error, ConnectionResetError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(error, (ConnectionError, httpx.NetworkError)):
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


def category_for(kind: ErrorKind) -> ErrorCategory:
    """Statistics bucket of an error kind."""
    return _CATEGORY_BY_KIND.get(kind, ErrorCategory.OTHER_ERRORS)


def is_retryable(kind: ErrorKind) -> bool:
    """Whether a failure of this kind is worth another attempt."""
    return kind in RETRYABLE_KINDS
