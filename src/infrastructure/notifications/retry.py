# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Retry execution, error history and delivery health.

ErrorManager runs delivery operations with exponential backoff and keeps
a rolling history of failures. The history feeds the health report the
notification service checks before each batch: a CRITICAL report stops
the batch before anything is sent.

Backoff delay before attempt n+1:
    min(base_delay * multiplier ** (n - 1), max_delay)

Only failures whose ErrorKind is retryable are retried. Everything else
fails the operation immediately.
"""

import asyncio
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from src.infrastructure.notifications.errors import (
    RETRYABLE_KINDS,
    ErrorCategory,
    ErrorKind,
    HealthStatus,
    category_for,
    classify_exception,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ERROR_HISTORY = 1000
STATISTICS_WINDOW = timedelta(hours=24)
ERROR_RETENTION = timedelta(days=7)


@dataclass
class RetryConfig:
    """Retry policy.

    Attributes:
        max_attempts: Attempts per operation, including the first one.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        backoff_multiplier: Growth factor between consecutive delays.
        retryable_kinds: Error kinds worth another attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_kinds: frozenset[ErrorKind] = RETRYABLE_KINDS

    def __post_init__(self) -> None:
        """Reject policies that would never run the operation."""
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt number ``attempt`` (1-based)."""
        delay = self.base_delay * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay)


@dataclass
class HealthThresholds:
    """Thresholds of the health report, in percent unless noted.

    Attributes:
        critical_error_rate: Error rate above which status is CRITICAL.
        warning_error_rate: Error rate above which status is WARNING.
        min_retry_success_rate: Retry success rate below which status is WARNING.
        critical_category_count: Errors of one category (count) that make
            it critical.
        min_operations: Operations required before the error rate counts.
    """

    critical_error_rate: float = 50.0
    warning_error_rate: float = 20.0
    min_retry_success_rate: float = 50.0
    critical_category_count: int = 10
    min_operations: int = 5


@dataclass
class AttemptResult:
    """One attempt of an operation."""

    attempt: int
    success: bool
    timestamp: datetime
    duration: float
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class RetryResult(Generic[T]):
    """Outcome of an operation run with retries.

    Attributes:
        success: Whether any attempt succeeded.
        total_attempts: Attempts made.
        total_duration: Seconds from the first attempt to the end.
        attempts: Per-attempt details.
        result: Return value of the successful attempt.
        final_error: Error of the last failed attempt.
        error_kind: Kind of the last failure.
    """

    success: bool
    total_attempts: int
    total_duration: float
    attempts: list[AttemptResult] = field(default_factory=list)
    result: T | None = None
    final_error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class ErrorRecord:
    """Entry of the rolling error history."""

    timestamp: datetime
    error: str
    kind: ErrorKind
    context: str
    resolved: bool = False

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.kind)


@dataclass
class OperationRecord:
    """Final outcome of one operation run through execute_with_retry."""

    timestamp: datetime
    success: bool
    attempts: int


@dataclass
class RetryStats:
    """Retry counters over the statistics window."""

    total_retries: int = 0
    success_after_retry: int = 0
    permanent_failures: int = 0


@dataclass
class ErrorStatistics:
    """Error counters over the last 24 hours."""

    total_errors: int
    errors_by_category: dict[str, int]
    recent_errors: list[dict[str, Any]]
    retry_stats: RetryStats
    total_operations: int = 0
    failed_operations: int = 0


@dataclass
class HealthReport:
    """Health of the delivery subsystem.

    Attributes:
        status: HEALTHY, WARNING or CRITICAL.
        error_rate: Percent of operations that failed.
        recent_failures: Operations that failed after all attempts.
        retry_success_rate: Percent of retried operations that succeeded.
        critical_errors: Categories that made the status critical.
        recommendations: Suggested operator actions (Spanish).
    """

    status: HealthStatus
    error_rate: float
    recent_failures: int
    retry_success_rate: float
    critical_errors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def can_continue(self) -> bool:
        """False when sending must stop."""
        return self.status != HealthStatus.CRITICAL


class ErrorManager:
    """Runs operations with retries and tracks delivery health.

    Attributes:
        config: Default retry policy.
        thresholds: Health report thresholds.

    Example:
        >>> manager = ErrorManager()
        >>> result = await manager.execute_with_retry(
        ...     lambda: transport.send(phone, text),
        ...     context=f"send:{phone}",
        ... )
        >>> manager.generate_health_report().status
        <HealthStatus.HEALTHY: 'HEALTHY'>
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        thresholds: HealthThresholds | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Default retry policy.
            thresholds: Health report thresholds.
            clock: Time source, injectable for tests.
            sleep: Async sleep used for backoff, injectable for tests.
        """
        self.config = config or RetryConfig()
        self.thresholds = thresholds or HealthThresholds()
        self._clock = clock
        self._sleep = sleep
        self._errors: deque[ErrorRecord] = deque(maxlen=MAX_ERROR_HISTORY)
        self._operations: deque[OperationRecord] = deque(maxlen=MAX_ERROR_HISTORY)

    @property
    def error_history(self) -> list[ErrorRecord]:
        """Snapshot of the rolling error history, oldest first."""
        return list(self._errors)

    def log_error(
        self,
        error: str,
        context: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> ErrorRecord:
        """Append a failure to the error history.

        Args:
            error: Error description.
            context: Operation label, e.g. "send:+584241234567".
            kind: Classified failure kind.

        Returns:
            The stored record.
        """
        record = ErrorRecord(timestamp=self._clock(), error=error, kind=kind, context=context)
        self._errors.append(record)
        logger.warning("Delivery error [%s] %s: %s", kind.value, context, error)
        return record

    def mark_resolved(self, records: list[ErrorRecord]) -> None:
        """Flag history entries as resolved by a later success."""
        for record in records:
            record.resolved = True

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        config: RetryConfig | None = None,
    ) -> RetryResult[T]:
        """Run an operation, retrying retryable failures with backoff.

        Exceptions raised by the operation are classified and recorded;
        they never propagate.

        Args:
            operation: Zero-argument coroutine factory.
            context: Operation label for the error history and logs.
            config: Retry policy overriding the default one.

        Returns:
            RetryResult with per-attempt details.
        """
        policy = config or self.config
        attempts: list[AttemptResult] = []
        logged: list[ErrorRecord] = []
        started = self._clock()
        last_error: str | None = None
        last_kind: ErrorKind | None = None

        for attempt in range(1, policy.max_attempts + 1):
            attempt_start = self._clock()
            try:
                result = await operation()
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                last_kind = classify_exception(e)
                attempts.append(
                    AttemptResult(
                        attempt=attempt,
                        success=False,
                        timestamp=attempt_start,
                        duration=(self._clock() - attempt_start).total_seconds(),
                        error=last_error,
                        error_kind=last_kind,
                    )
                )
                logged.append(self.log_error(last_error, context, last_kind))

                if attempt == policy.max_attempts or last_kind not in policy.retryable_kinds:
                    logger.error(
                        "Operation failed permanently after %d attempt(s): %s - %s",
                        attempt,
                        context,
                        last_error,
                    )
                    break

                delay = policy.delay_for(attempt)
                logger.info(
                    "Attempt %d/%d failed for %s, retrying in %.1fs",
                    attempt,
                    policy.max_attempts,
                    context,
                    delay,
                )
                await self._sleep(delay)
                continue

            attempts.append(
                AttemptResult(
                    attempt=attempt,
                    success=True,
                    timestamp=attempt_start,
                    duration=(self._clock() - attempt_start).total_seconds(),
                )
            )
            if logged:
                self.mark_resolved(logged)
                logger.info("Operation succeeded on attempt %d: %s", attempt, context)

            self._operations.append(
                OperationRecord(timestamp=started, success=True, attempts=attempt)
            )
            return RetryResult(
                success=True,
                total_attempts=attempt,
                total_duration=(self._clock() - started).total_seconds(),
                attempts=attempts,
                result=result,
            )

        self._operations.append(
            OperationRecord(timestamp=started, success=False, attempts=len(attempts))
        )
        return RetryResult(
            success=False,
            total_attempts=len(attempts),
            total_duration=(self._clock() - started).total_seconds(),
            attempts=attempts,
            final_error=last_error,
            error_kind=last_kind,
        )

    def get_error_statistics(self) -> ErrorStatistics:
        """Summarize errors and operations of the last 24 hours."""
        cutoff = self._clock() - STATISTICS_WINDOW
        recent_errors = [e for e in self._errors if e.timestamp > cutoff]
        recent_ops = [op for op in self._operations if op.timestamp > cutoff]

        by_category = Counter(e.category.value for e in recent_errors)
        retried = [op for op in recent_ops if op.attempts > 1]

        return ErrorStatistics(
            total_errors=len(recent_errors),
            errors_by_category=dict(by_category),
            recent_errors=[
                {
                    "timestamp": e.timestamp.isoformat(),
                    "error": e.error,
                    "kind": e.kind.value,
                    "context": e.context,
                    "resolved": e.resolved,
                }
                for e in recent_errors[-10:]
            ],
            retry_stats=RetryStats(
                total_retries=sum(op.attempts - 1 for op in recent_ops),
                success_after_retry=sum(1 for op in retried if op.success),
                permanent_failures=sum(1 for op in recent_ops if not op.success),
            ),
            total_operations=len(recent_ops),
            failed_operations=sum(1 for op in recent_ops if not op.success),
        )

    def generate_health_report(self) -> HealthReport:
        """Assess delivery health from the last 24 hours.

        CRITICAL when the error rate exceeds the critical threshold, when
        any category exceeds the per-category count, or on any
        authentication error. WARNING when the error rate exceeds the
        warning threshold or retried operations mostly fail.

        Returns:
            HealthReport with recommendations.
        """
        stats = self.get_error_statistics()
        limits = self.thresholds
        recommendations: list[str] = []

        error_rate = 0.0
        if stats.total_operations >= limits.min_operations:
            error_rate = stats.failed_operations / stats.total_operations * 100

        retried = sum(1 for op in self._recent_operations() if op.attempts > 1)
        retry_success_rate = (
            stats.retry_stats.success_after_retry / retried * 100 if retried else 100.0
        )

        critical_errors = [
            category
            for category, count in stats.errors_by_category.items()
            if count > limits.critical_category_count
            or category == ErrorCategory.AUTH_ERRORS.value
        ]

        status = HealthStatus.HEALTHY
        if error_rate > limits.critical_error_rate or critical_errors:
            status = HealthStatus.CRITICAL
            recommendations.append("Revisar inmediatamente los errores críticos")
            recommendations.append("Considerar suspender envíos automáticos")
        elif (
            error_rate > limits.warning_error_rate
            or retry_success_rate < limits.min_retry_success_rate
        ):
            status = HealthStatus.WARNING
            recommendations.append("Monitorear de cerca el sistema")
            recommendations.append("Considerar ajustar configuración de reintentos")

        if stats.errors_by_category.get(ErrorCategory.NETWORK_ERRORS.value, 0) > 5:
            recommendations.append("Revisar conectividad de red")
        if stats.errors_by_category.get(ErrorCategory.RATE_LIMIT_ERRORS.value, 0) > 3:
            recommendations.append("Ajustar límites de velocidad de envío")
        if stats.retry_stats.permanent_failures > 10:
            recommendations.append("Revisar datos de contacto inválidos")

        if status != HealthStatus.HEALTHY:
            logger.warning(
                "Delivery health %s (error rate %.1f%%, critical: %s)",
                status.value,
                error_rate,
                critical_errors,
            )

        return HealthReport(
            status=status,
            error_rate=error_rate,
            recent_failures=stats.retry_stats.permanent_failures,
            retry_success_rate=retry_success_rate,
            critical_errors=critical_errors,
            recommendations=recommendations,
        )

    def _recent_operations(self) -> list[OperationRecord]:
        cutoff = self._clock() - STATISTICS_WINDOW
        return [op for op in self._operations if op.timestamp > cutoff]

    def clean_old_errors(self) -> int:
        """Drop history entries older than a week.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock() - ERROR_RETENTION
        before = len(self._errors)
        self._errors = deque(
            (e for e in self._errors if e.timestamp > cutoff), maxlen=MAX_ERROR_HISTORY
        )
        self._operations = deque(
            (op for op in self._operations if op.timestamp > cutoff), maxlen=MAX_ERROR_HISTORY
        )
        removed = before - len(self._errors)
        if removed:
            logger.info("Removed %d old error records", removed)
        return removed

    def reset(self) -> None:
        """Forget all history."""
        self._errors.clear()
        self._operations.clear()
