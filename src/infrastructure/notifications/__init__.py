# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian message delivery infrastructure.

This package provides the delivery path for notification batches:
- RateLimiter: Per-minute/hour/day caps and inter-message cooldown
- ErrorManager: Retries with exponential backoff and health reporting
- Channels: Message transports (WhatsApp gateway)

Example:
    from src.infrastructure.notifications import ErrorManager, RateLimiter

    limiter = RateLimiter()
    errors = ErrorManager()

    async def deliver(phone: str, text: str) -> bool:
        result = await errors.execute_with_retry(
            lambda: channel.send(phone, text), context=f"send:{phone}"
        )
        return result.success

    batch = await limiter.send_batch(messages, deliver)
"""

from src.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    MessageTransport,
    WhatsAppChannel,
)
from src.infrastructure.notifications.errors import (
    RETRYABLE_KINDS,
    DeliveryError,
    ErrorCategory,
    ErrorKind,
    HealthStatus,
    category_for,
    classify_exception,
    is_retryable,
)
from src.infrastructure.notifications.rate_limiter import (
    BatchMessage,
    BatchResult,
    LimitConstraint,
    RateLimitConfig,
    RateLimiter,
    RateLimitStatistics,
    RateLimitStatus,
    SendAttempt,
    SendResult,
    WindowCount,
)
from src.infrastructure.notifications.retry import (
    AttemptResult,
    ErrorManager,
    ErrorRecord,
    ErrorStatistics,
    HealthReport,
    HealthThresholds,
    RetryConfig,
    RetryResult,
    RetryStats,
)

__all__ = [
    # Channels
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "MessageTransport",
    "WhatsAppChannel",
    # Errors
    "DeliveryError",
    "ErrorCategory",
    "ErrorKind",
    "HealthStatus",
    "RETRYABLE_KINDS",
    "category_for",
    "classify_exception",
    "is_retryable",
    # Rate limiting
    "BatchMessage",
    "BatchResult",
    "LimitConstraint",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitStatistics",
    "RateLimitStatus",
    "SendAttempt",
    "SendResult",
    "WindowCount",
    # Retry
    "AttemptResult",
    "ErrorManager",
    "ErrorRecord",
    "ErrorStatistics",
    "HealthReport",
    "HealthThresholds",
    "RetryConfig",
    "RetryResult",
    "RetryStats",
]
