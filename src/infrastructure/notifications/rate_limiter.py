# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Outbound message rate limiting.

Keeps the guardian messaging account under the gateway's sending budget.
Successful sends are capped per minute, per hour and per day over
sliding windows, and consecutive successful sends are spaced by a
cooldown. Failed attempts are logged for auditing but do not count
toward the caps.

Delivery is strictly sequential: one phone at a time. Concurrent sends
would make the sliding-window caps unenforceable without locking.

Example:
    limiter = RateLimiter()

    status = limiter.check_limit()
    if not status.can_send:
        logger.info("Blocked: %s", status.reason)

    batch = await limiter.send_batch(messages, transport.send)
    print(batch.successful, batch.rate_limited)
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

SendFunction = Callable[[str, str], Awaitable[bool]]
ProgressCallback = Callable[[int, int, str], Any]


class LimitConstraint(str, Enum):
    """Constraint that blocked a send."""

    COOLDOWN = "cooldown"
    PER_MINUTE = "per_minute"
    PER_HOUR = "per_hour"
    PER_DAY = "per_day"


@dataclass
class RateLimitConfig:
    """Sending budget.

    Attributes:
        max_per_minute: Successful sends allowed in any 60 second window.
        max_per_hour: Successful sends allowed in any 60 minute window.
        max_per_day: Successful sends allowed in any 24 hour window.
        cooldown_seconds: Minimum gap after the last successful send.
    """

    max_per_minute: int = 10
    max_per_hour: int = 100
    max_per_day: int = 500
    cooldown_seconds: float = 2.0


@dataclass
class WindowCount:
    """Successful sends in a window against its cap."""

    current: int
    max: int


@dataclass
class RateLimitStatus:
    """Result of a limit check.

    Attributes:
        can_send: Whether a send is allowed now.
        reason: Why it is not allowed (Spanish, shown to staff).
        constraint: Which constraint blocked the send.
        next_available_time: When sending becomes legal again.
        current_counts: Per-window counters.
    """

    can_send: bool
    current_counts: dict[str, WindowCount]
    reason: str | None = None
    constraint: LimitConstraint | None = None
    next_available_time: datetime | None = None


@dataclass
class SendAttempt:
    """Entry of the attempt log."""

    timestamp: datetime
    phone_number: str
    success: bool
    message_type: str
    rate_limited: bool = False


@dataclass
class BatchMessage:
    """Message queued for batch delivery."""

    phone_number: str
    message: str
    message_type: str


@dataclass
class SendResult:
    """Outcome of sending one message through the limiter."""

    phone_number: str
    success: bool
    rate_limited: bool = False
    error: str | None = None
    status: RateLimitStatus | None = None


@dataclass
class BatchResult:
    """Outcome of a batch, with one result per message in input order."""

    results: list[SendResult] = field(default_factory=list)
    total: int = 0
    successful: int = 0
    failed: int = 0
    rate_limited: int = 0


@dataclass
class RateLimitStatistics:
    """Attempt log summary."""

    total_attempts: int
    successful_sends: int
    failed_sends: int
    rate_limited_attempts: int
    success_rate: float
    messages_last_hour: int
    messages_last_day: int
    status: RateLimitStatus


class RateLimiter:
    """Sliding-window rate limiter for outbound messages.

    Attributes:
        config: Sending budget.

    Example:
        limiter = RateLimiter(RateLimitConfig(max_per_minute=5))
        result = await limiter.send_message(phone, text, "late", transport.send)
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            config: Sending budget.
            clock: Time source, injectable for tests.
            sleep: Async sleep used while waiting for a window, injectable for tests.
        """
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._attempts: list[SendAttempt] = []
        self._last_success: datetime | None = None

    @property
    def attempts(self) -> list[SendAttempt]:
        """Snapshot of the attempt log (last 24 hours)."""
        return list(self._attempts)

    def _prune(self, now: datetime) -> None:
        cutoff = now - DAY
        self._attempts = [a for a in self._attempts if a.timestamp > cutoff]

    def _successes_since(self, cutoff: datetime) -> list[datetime]:
        return sorted(a.timestamp for a in self._attempts if a.success and a.timestamp > cutoff)

    def check_limit(self) -> RateLimitStatus:
        """Check whether a message may be sent now.

        The cooldown is checked first, then the minute, hour and day caps.

        Returns:
            RateLimitStatus naming the violated constraint, if any.
        """
        now = self._clock()
        self._prune(now)

        minute = self._successes_since(now - MINUTE)
        hour = self._successes_since(now - HOUR)
        day = self._successes_since(now - DAY)
        counts = {
            LimitConstraint.PER_MINUTE.value: WindowCount(len(minute), self.config.max_per_minute),
            LimitConstraint.PER_HOUR.value: WindowCount(len(hour), self.config.max_per_hour),
            LimitConstraint.PER_DAY.value: WindowCount(len(day), self.config.max_per_day),
        }

        cooldown = timedelta(seconds=self.config.cooldown_seconds)
        if self._last_success is not None and now - self._last_success < cooldown:
            remaining = (self._last_success + cooldown - now).total_seconds()
            return RateLimitStatus(
                can_send=False,
                current_counts=counts,
                reason=f"Cooldown activo. Espere {math.ceil(remaining)} segundos",
                constraint=LimitConstraint.COOLDOWN,
                next_available_time=self._last_success + cooldown,
            )

        windows = (
            (LimitConstraint.PER_MINUTE, minute, self.config.max_per_minute, MINUTE, "por minuto"),
            (LimitConstraint.PER_HOUR, hour, self.config.max_per_hour, HOUR, "por hora"),
            (LimitConstraint.PER_DAY, day, self.config.max_per_day, DAY, "diario"),
        )
        for constraint, successes, cap, window, label in windows:
            if len(successes) >= cap:
                next_time = successes[len(successes) - cap] + window if successes else now
                return RateLimitStatus(
                    can_send=False,
                    current_counts=counts,
                    reason=f"Límite {label} excedido ({len(successes)}/{cap})",
                    constraint=constraint,
                    next_available_time=next_time,
                )

        return RateLimitStatus(can_send=True, current_counts=counts)

    def record_attempt(
        self,
        phone_number: str,
        success: bool,
        message_type: str,
        rate_limited: bool = False,
    ) -> SendAttempt:
        """Append an attempt to the log.

        Args:
            phone_number: Destination phone.
            success: Whether the transport accepted the message.
            message_type: Message category, for auditing.
            rate_limited: Whether the attempt was blocked by the limiter.

        Returns:
            The logged attempt.
        """
        attempt = SendAttempt(
            timestamp=self._clock(),
            phone_number=phone_number,
            success=success,
            message_type=message_type,
            rate_limited=rate_limited,
        )
        self._attempts.append(attempt)
        if success:
            self._last_success = attempt.timestamp

        logger.debug(
            "Attempt recorded: %s success=%s type=%s rate_limited=%s",
            phone_number,
            success,
            message_type,
            rate_limited,
        )
        return attempt

    async def send_message(
        self,
        phone_number: str,
        message: str,
        message_type: str,
        send_fn: SendFunction,
    ) -> SendResult:
        """Send one message if the budget allows it.

        A blocked send is logged as a failed, rate-limited attempt. An
        exception raised by send_fn becomes a failed result.

        Args:
            phone_number: Destination phone.
            message: Message text.
            message_type: Message category.
            send_fn: Transport call returning True on acceptance.

        Returns:
            SendResult for the message.
        """
        status = self.check_limit()
        if not status.can_send:
            logger.info("Send blocked for %s: %s", phone_number, status.reason)
            self.record_attempt(phone_number, False, message_type, rate_limited=True)
            return SendResult(
                phone_number=phone_number,
                success=False,
                rate_limited=True,
                error=status.reason,
                status=status,
            )

        try:
            success = bool(await send_fn(phone_number, message))
        except Exception as e:
            logger.warning("Send to %s raised: %s", phone_number, e)
            self.record_attempt(phone_number, False, message_type)
            return SendResult(
                phone_number=phone_number,
                success=False,
                error=str(e) or e.__class__.__name__,
                status=status,
            )

        self.record_attempt(phone_number, success, message_type)
        return SendResult(
            phone_number=phone_number,
            success=success,
            error=None if success else "El transporte rechazó el mensaje",
            status=status,
        )

    async def _wait_until(self, moment: datetime | None) -> None:
        if moment is None:
            return
        wait = (moment - self._clock()).total_seconds()
        if wait > 0:
            logger.info("Waiting %.1fs for the sending window", wait)
            await self._sleep(wait)

    async def send_batch(
        self,
        messages: list[BatchMessage],
        send_fn: SendFunction,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Send messages one after another within the budget.

        The cooldown only paces the batch: the limiter waits it out and
        sends the same message. A cap rejection marks that message as
        rate limited, then the batch waits until the window reopens
        before evaluating the next message.

        Args:
            messages: Messages in delivery order.
            send_fn: Transport call returning True on acceptance.
            on_progress: Called as (completed, total, current_phone)
                before each message and once at the end.

        Returns:
            BatchResult with per-message results in input order.
        """
        batch = BatchResult(total=len(messages))
        logger.info("Starting batch of %d messages", len(messages))

        for index, item in enumerate(messages):
            if on_progress is not None:
                on_progress(index, len(messages), item.phone_number)

            status = self.check_limit()
            while not status.can_send and status.constraint == LimitConstraint.COOLDOWN:
                await self._wait_until(status.next_available_time)
                status = self.check_limit()

            result = await self.send_message(
                item.phone_number, item.message, item.message_type, send_fn
            )
            batch.results.append(result)

            if result.success:
                batch.successful += 1
            elif result.rate_limited:
                batch.rate_limited += 1
                if result.status is not None:
                    await self._wait_until(result.status.next_available_time)
            else:
                batch.failed += 1

        if on_progress is not None:
            on_progress(len(messages), len(messages), "")

        logger.info(
            "Batch finished: %d sent, %d failed, %d rate limited",
            batch.successful,
            batch.failed,
            batch.rate_limited,
        )
        return batch

    def get_statistics(self) -> RateLimitStatistics:
        """Summarize the attempt log of the last 24 hours."""
        status = self.check_limit()
        total = len(self._attempts)
        successful = sum(1 for a in self._attempts if a.success)
        now = self._clock()

        return RateLimitStatistics(
            total_attempts=total,
            successful_sends=successful,
            failed_sends=total - successful,
            rate_limited_attempts=sum(1 for a in self._attempts if a.rate_limited),
            success_rate=successful / total * 100 if total else 0.0,
            messages_last_hour=len(self._successes_since(now - HOUR)),
            messages_last_day=len(self._successes_since(now - DAY)),
            status=status,
        )

    def calculate_batch_delay(self, batch_size: int) -> float:
        """Suggest seconds between messages for a batch of a given size.

        Args:
            batch_size: Messages about to be sent.

        Returns:
            Wait until the window reopens when blocked; otherwise a
            spacing that spreads the batch over enough minutes, never
            below the cooldown.
        """
        status = self.check_limit()
        if not status.can_send and status.next_available_time is not None:
            return max(0.0, (status.next_available_time - self._clock()).total_seconds())

        per_minute = status.current_counts[LimitConstraint.PER_MINUTE.value]
        remaining = per_minute.max - per_minute.current
        if batch_size > remaining:
            minutes_needed = math.ceil(batch_size / self.config.max_per_minute)
            return max(minutes_needed * 60 / batch_size, self.config.cooldown_seconds)

        return self.config.cooldown_seconds

    def reset(self) -> None:
        """Clear the attempt log and cooldown."""
        self._attempts.clear()
        self._last_success = None
        logger.info("Rate limiter reset")
