# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification Service - notifies guardians about attendance events.

This service runs a notification batch through a fixed sequence of
phases:
- VALIDATING: resolve students, check contacts, sending time and content
- HEALTH_CHECK: stop when delivery health is CRITICAL
- RENDERING: resolve escalation levels and render one message per student
- SENDING: deliver one message per guardian phone, rate limited and retried
- COMPLETED or ABORTED

The service never raises for expected failures. Every outcome, including
an aborted batch, is reported as a NotificationResult.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.domains.attendance.escalation import EscalationClassifier
from src.domains.attendance.schemas import EscalationResult
from src.domains.contacts.phone import PhoneNormalizer
from src.domains.notification.schemas import (
    HealthStatusSummary,
    NotificationHistoryEntry,
    NotificationPhase,
    NotificationRequest,
    NotificationResult,
    NotificationSummary,
    PhoneDeliveryResult,
    StudentNotificationResult,
    ValidationSummary,
)
from src.domains.notification.validation import (
    BULK_PHONE_THRESHOLD,
    NotificationValidator,
    RequestValidation,
    StudentValidation,
)
from src.domains.templates.manager import TemplateManager, TemplateServiceError
from src.domains.templates.renderer import TemplateRenderer
from src.domains.templates.schemas import MessageTemplate, RenderContext, TemplateCategory
from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.notifications.channels.whatsapp import WhatsAppChannel
from src.infrastructure.notifications.errors import DeliveryError, ErrorKind, HealthStatus
from src.infrastructure.notifications.rate_limiter import (
    BatchMessage,
    RateLimitConfig,
    RateLimiter,
    RateLimitStatistics,
)
from src.infrastructure.notifications.retry import (
    ErrorManager,
    ErrorStatistics,
    HealthReport,
    HealthThresholds,
    RetryConfig,
)
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.core.config.settings import Settings
    from src.infrastructure.notifications.channels.base import MessageTransport
    from src.infrastructure.stores.base import (
        AttendanceDataSource,
        HistoryStore,
        StudentDataSource,
        TemplateStore,
    )

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[NotificationPhase, int, int, str], None]

NO_ABSENCES_MESSAGE = "Sin inasistencias injustificadas esta semana"
CRITICAL_HEALTH_MESSAGE = "Sistema en estado crítico. Suspendiendo envíos automáticos."
REJECTED_MESSAGE = "El transporte rechazó el mensaje"


class NotificationServiceError(Exception):
    """Exception raised for notification batch failures."""

    def __init__(
        self,
        message: str,
        code: str = "notification_error",
        original_error: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)


class ValidationFailedError(NotificationServiceError):
    """Raised when a batch has nothing valid to send."""

    def __init__(self, message: str):
        super().__init__(message=message, code="validation_failed")


class SystemUnhealthyError(NotificationServiceError):
    """Raised when delivery health is CRITICAL."""

    def __init__(self, message: str = CRITICAL_HEALTH_MESSAGE):
        super().__init__(message=message, code="system_critical")


class TemplateUnavailableError(NotificationServiceError):
    """Raised when an explicitly requested template does not exist."""

    def __init__(self, template_id: str):
        super().__init__(
            message=f"Plantilla no encontrada: {template_id}",
            code="template_not_found",
        )
        self.template_id = template_id


class AttendanceUnavailableError(NotificationServiceError):
    """Raised when weekly attendance cannot be read."""

    def __init__(self, original_error: Exception):
        super().__init__(
            message=f"No se pudo consultar la asistencia: {original_error}",
            code="attendance_unavailable",
            original_error=original_error,
        )


@dataclass
class SystemStatistics:
    """Delivery health, rate-limit budget and error history."""

    health: HealthReport
    rate_limits: RateLimitStatistics
    errors: ErrorStatistics


@dataclass
class _RenderedMessage:
    student: StudentNotificationResult
    content: str
    template_id: str | None


class NotificationService:
    """Orchestrates attendance notification batches.

    Collaborators are injected; build_notification_service() wires them
    from settings.

    Attributes:
        live: When False every batch runs as a dry run.
        enforce_sending_window: Whether quiet hours block real sends.

    Example:
        service = build_notification_service(settings, students, attendance, templates)
        result = await service.send_notifications(
            NotificationRequest(
                student_ids=["s-1", "s-2"],
                category=TemplateCategory.UNEXCUSED_ABSENCE,
            )
        )
        print(result.summary.successful)
    """

    def __init__(
        self,
        student_source: "StudentDataSource",
        attendance_source: "AttendanceDataSource",
        transport: "MessageTransport",
        template_manager: TemplateManager,
        renderer: TemplateRenderer | None = None,
        rate_limiter: RateLimiter | None = None,
        error_manager: ErrorManager | None = None,
        history_store: "HistoryStore | None" = None,
        phone_normalizer: PhoneNormalizer | None = None,
        local_timezone: tzinfo | None = None,
        enforce_sending_window: bool = True,
        bulk_phone_threshold: int = BULK_PHONE_THRESHOLD,
        live: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the notification service.

        Args:
            student_source: Student record store.
            attendance_source: Date-ranged attendance query.
            transport: Message transport.
            template_manager: Template access.
            renderer: Template renderer.
            rate_limiter: Outbound budget.
            error_manager: Retry policy and health tracking.
            history_store: Audit log of delivery attempts.
            phone_normalizer: Guardian phone rules.
            local_timezone: Academy timezone for the sending window and
                the default attendance date. UTC when None.
            enforce_sending_window: Whether quiet hours block real sends.
            bulk_phone_threshold: Phone count flagged as a bulk send.
            live: When False every batch runs as a dry run.
            clock: Time source, injectable for tests.
        """
        self._transport = transport
        self._templates = template_manager
        self._renderer = renderer or TemplateRenderer(clock=clock)
        self._rate_limiter = rate_limiter or RateLimiter(clock=clock)
        self._error_manager = error_manager or ErrorManager(clock=clock)
        self._history = history_store
        self._classifier = EscalationClassifier(attendance_source)
        self._validator = NotificationValidator(
            student_source,
            phone_normalizer=phone_normalizer,
            bulk_threshold=bulk_phone_threshold,
            max_message_length=self._renderer.max_length,
        )
        self._timezone = local_timezone
        self._clock = clock
        self.enforce_sending_window = enforce_sending_window
        self.live = live

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def error_manager(self) -> ErrorManager:
        return self._error_manager

    @property
    def template_manager(self) -> TemplateManager:
        return self._templates

    @property
    def history_store(self) -> "HistoryStore | None":
        return self._history

    @property
    def renderer(self) -> TemplateRenderer:
        return self._renderer

    @property
    def transport(self) -> "MessageTransport":
        return self._transport

    def _local_now(self) -> datetime:
        now = self._clock()
        return now.astimezone(self._timezone) if self._timezone else now

    @staticmethod
    def _progress(
        callback: ProgressCallback | None,
        phase: NotificationPhase,
        completed: int,
        total: int,
        current: str,
    ) -> None:
        if callback is not None:
            callback(phase, completed, total, current)

    # =========================================================================
    # Batch
    # =========================================================================

    async def send_notifications(
        self,
        request: NotificationRequest,
        on_progress: ProgressCallback | None = None,
    ) -> NotificationResult:
        """Run a notification batch.

        Args:
            request: Students, category and message options.
            on_progress: Called as (phase, completed, total, current).

        Returns:
            NotificationResult. Aborted batches have success False and
            phase ABORTED with the reason in message.
        """
        started = time.perf_counter()
        dry_run = request.dry_run or not self.live
        total = len(request.student_ids)
        result = NotificationResult(
            success=False,
            phase=NotificationPhase.VALIDATING,
            dry_run=dry_run,
            summary=NotificationSummary(total=total),
        )
        messages_sent = 0

        logger.info(
            "Notification batch started: %d students, category=%s, dry_run=%s",
            total,
            request.category.value,
            dry_run,
        )

        try:
            self._progress(on_progress, result.phase, 0, total, "Validando datos de estudiantes")
            now = self._local_now()
            validation = await self._validator.validate_request(
                request.student_ids,
                now=now,
                custom_message=request.custom_message,
                enforce_sending_time=self.enforce_sending_window and not dry_run,
            )
            self._apply_validation(result, validation)
            if not validation.can_proceed:
                raise ValidationFailedError(self._validation_failure(validation))

            result.phase = NotificationPhase.HEALTH_CHECK
            self._progress(on_progress, result.phase, 0, total, "Verificando salud del sistema")
            self._check_health(result)

            result.phase = NotificationPhase.RENDERING
            self._progress(on_progress, result.phase, 0, total, "Preparando mensajes")
            rendered = await self._render_messages(request, validation.students.valid, now, result)
            messages_sent = sum(len(m.student.phone_numbers) for m in rendered)

            if dry_run:
                for message in rendered:
                    message.student.success = True
                result.summary.successful = messages_sent
                result.success = True
                result.message = f"Simulación completada: {messages_sent} mensajes preparados"
                logger.info("Dry run finished: %d messages rendered", messages_sent)
            elif not rendered:
                result.message = "No hay mensajes para enviar"
            else:
                result.phase = NotificationPhase.SENDING
                await self._send_messages(request, rendered, result, on_progress)
                result.success = result.summary.successful > 0
                result.message = (
                    f"Proceso completado: {result.summary.successful} enviados, "
                    f"{result.summary.failed} fallidos, "
                    f"{result.summary.rate_limited} limitados"
                )

            result.phase = NotificationPhase.COMPLETED
            self._progress(on_progress, result.phase, total, total, "Proceso completado")

        except (NotificationServiceError, TemplateServiceError, DatabaseError) as e:
            message = getattr(e, "message", None) or str(e)
            logger.error("Notification batch aborted in %s: %s", result.phase.value, message)
            result.success = False
            result.phase = NotificationPhase.ABORTED
            result.message = message
            result.health_status.warnings.append(message)
            self._progress(on_progress, result.phase, 0, total, message)

        duration = time.perf_counter() - started
        result.performance.total_duration = duration
        if messages_sent and not dry_run:
            result.performance.average_time_per_message = duration / messages_sent

        logger.info(
            "Notification batch %s: %d sent, %d failed, %d rate limited, %d invalid",
            result.phase.value,
            result.summary.successful,
            result.summary.failed,
            result.summary.rate_limited,
            result.summary.invalid,
        )
        return result

    def _apply_validation(self, result: NotificationResult, validation: RequestValidation) -> None:
        students = validation.students
        result.validation = ValidationSummary(
            valid_students=len(students.valid),
            invalid_students=len(students.invalid),
            recommendations=list(validation.recommendations),
        )
        result.summary.invalid = len(students.invalid)

        for student in students.invalid:
            result.detailed_results.append(
                StudentNotificationResult(
                    student_id=student.id,
                    student_name=student.name,
                    phone_numbers=student.phone_numbers,
                    success=False,
                    error=", ".join(student.errors),
                )
            )

    @staticmethod
    def _validation_failure(validation: RequestValidation) -> str:
        reasons: list[str] = []
        if not validation.students.valid:
            reasons.append("Ningún estudiante tiene datos válidos para notificar")
        reasons.extend(validation.sending_time.errors)
        if validation.message is not None:
            reasons.extend(validation.message.errors)
        return "Validación falló: " + "; ".join(dict.fromkeys(reasons))

    def _check_health(self, result: NotificationResult) -> None:
        report = self._error_manager.generate_health_report()
        result.health_status = HealthStatusSummary(
            system_status=report.status,
            can_continue=report.can_continue,
            warnings=list(report.recommendations),
        )
        if report.status == HealthStatus.CRITICAL:
            raise SystemUnhealthyError()

    # =========================================================================
    # Rendering
    # =========================================================================

    async def _render_messages(
        self,
        request: NotificationRequest,
        students: list[StudentValidation],
        now: datetime,
        result: NotificationResult,
    ) -> list[_RenderedMessage]:
        """Render one message per valid student.

        Students without unexcused absences and students whose message
        fails to render get an outcome in detailed_results and are left
        out of the batch.
        """
        escalations: dict[str, EscalationResult] = {}
        if request.category == TemplateCategory.UNEXCUSED_ABSENCE:
            as_of = request.attendance_date or now.date()
            try:
                escalations = await self._classifier.resolve_levels([s.id for s in students], as_of)
            except Exception as e:
                logger.error("Attendance lookup failed for week of %s: %s", as_of, e)
                raise AttendanceUnavailableError(e) from e

        fixed_template = await self._fixed_template(request)
        moment = self._event_moment(request.attendance_date, now)
        rendered: list[_RenderedMessage] = []

        for student in students:
            outcome = StudentNotificationResult(
                student_id=student.id,
                student_name=student.name,
                phone_numbers=student.phone_numbers,
            )
            result.detailed_results.append(outcome)

            escalation = escalations.get(student.id)
            if escalation is not None:
                outcome.weekly_absences = escalation.weekly_absences
                outcome.escalation_level = escalation.level
                if escalation.level is None:
                    outcome.skipped = True
                    outcome.error = NO_ABSENCES_MESSAGE
                    continue

            template = fixed_template or await self._templates.select_template(
                request.category,
                escalation.level if escalation else None,
            )
            if template is None:
                outcome.error = f"No hay plantilla activa para la categoría {request.category.value}"
                continue

            render = self._renderer.render(
                template,
                RenderContext(
                    student=student.record,
                    class_info=request.class_info,
                    attendance_date=moment,
                    escalation=escalation,
                    custom=request.custom_variables,
                ),
            )
            if not render.success or render.content is None:
                outcome.error = "; ".join(render.errors)
                logger.warning("Render failed for student %s: %s", student.id, outcome.error)
                continue

            rendered.append(_RenderedMessage(outcome, render.content, template.id))

        return rendered

    async def _fixed_template(self, request: NotificationRequest) -> MessageTemplate | None:
        if request.custom_message is not None:
            return MessageTemplate(
                name="Mensaje personalizado",
                category=request.category,
                content=request.custom_message,
            )
        if request.template_id:
            template = await self._templates.get(request.template_id)
            if template is None:
                raise TemplateUnavailableError(request.template_id)
            return template
        return None

    @staticmethod
    def _event_moment(attendance_date: date | None, now: datetime) -> datetime:
        if attendance_date is None:
            return now
        return datetime.combine(attendance_date, now.timetz())

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send_once(self, phone: str, text: str) -> bool:
        if not await self._transport.send(phone, text):
            raise DeliveryError(ErrorKind.REJECTED, REJECTED_MESSAGE)
        return True

    async def _send_messages(
        self,
        request: NotificationRequest,
        rendered: list[_RenderedMessage],
        result: NotificationResult,
        on_progress: ProgressCallback | None,
    ) -> None:
        batch_messages: list[BatchMessage] = []
        owners: list[_RenderedMessage] = []
        for message in rendered:
            for phone in message.student.phone_numbers:
                batch_messages.append(
                    BatchMessage(
                        phone_number=phone,
                        message=message.content,
                        message_type=request.category.value,
                    )
                )
                owners.append(message)

        retry_attempts = 0

        async def deliver(phone: str, text: str) -> bool:
            nonlocal retry_attempts
            outcome = await self._error_manager.execute_with_retry(
                lambda: self._send_once(phone, text),
                context=f"send:{phone}",
            )
            retry_attempts += max(outcome.total_attempts - 1, 0)
            if not outcome.success:
                raise DeliveryError(
                    outcome.error_kind or ErrorKind.UNKNOWN,
                    outcome.final_error or "Error desconocido",
                )
            return True

        def report(completed: int, total: int, phone: str) -> None:
            self._progress(on_progress, NotificationPhase.SENDING, completed, total, phone)

        batch = await self._rate_limiter.send_batch(batch_messages, deliver, on_progress=report)

        for item, sent, owner in zip(batch_messages, batch.results, owners):
            owner.student.phone_results.append(
                PhoneDeliveryResult(
                    phone=item.phone_number,
                    success=sent.success,
                    rate_limited=sent.rate_limited,
                    error=sent.error,
                )
            )
            if sent.success:
                owner.student.notified_phones.append(item.phone_number)
            await self._record_delivery(request, owner, item.phone_number, sent.success, sent.error)
            if owner.template_id and not sent.rate_limited:
                await self._templates.update_usage_stats(owner.template_id, sent.success)

        for message in rendered:
            student = message.student
            student.success = bool(student.phone_results) and all(
                r.success for r in student.phone_results
            )
            errors = [r.error for r in student.phone_results if r.error]
            if errors:
                student.error = "; ".join(dict.fromkeys(errors))

        result.summary.successful = batch.successful
        result.summary.failed = batch.failed
        result.summary.rate_limited = batch.rate_limited
        result.performance.retry_attempts = retry_attempts

    async def _record_delivery(
        self,
        request: NotificationRequest,
        message: _RenderedMessage,
        phone: str,
        success: bool,
        error: str | None,
    ) -> None:
        if self._history is None:
            return
        entry = NotificationHistoryEntry(
            student_id=message.student.student_id,
            student_name=message.student.student_name,
            phone=phone,
            type=request.category,
            content=message.content,
            timestamp=self._clock(),
            success=success,
            escalation_level=message.student.escalation_level,
            weekly_count=message.student.weekly_absences,
            template_id=message.template_id,
            error=error,
        )
        try:
            await self._history.append(entry)
        except DatabaseError as e:
            logger.error("Failed to record history for %s: %s", phone, e)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_system_statistics(self) -> SystemStatistics:
        """Snapshot of delivery health, rate limits and recent errors."""
        return SystemStatistics(
            health=self._error_manager.generate_health_report(),
            rate_limits=self._rate_limiter.get_statistics(),
            errors=self._error_manager.get_error_statistics(),
        )


def build_notification_service(
    settings: "Settings",
    student_source: "StudentDataSource",
    attendance_source: "AttendanceDataSource",
    template_store: "TemplateStore",
    history_store: "HistoryStore | None" = None,
    transport: "MessageTransport | None" = None,
) -> NotificationService:
    """Wire a NotificationService from settings.

    Args:
        settings: Application settings.
        student_source: Student record store.
        attendance_source: Date-ranged attendance query.
        template_store: Template persistence.
        history_store: Notification history persistence.
        transport: Message transport; the WhatsApp gateway when None.

    Returns:
        A service with its own rate limiter and error manager.
    """
    if transport is None:
        transport = WhatsAppChannel(
            api_url=settings.whatsapp.api_url,
            api_token=settings.whatsapp.api_token.get_secret_value(),
            timeout=settings.whatsapp.timeout,
        )

    renderer = TemplateRenderer(
        academy_name=settings.templates.academy_name,
        contact_phone=settings.templates.contact_phone,
        max_length=settings.templates.max_message_length,
    )
    return NotificationService(
        student_source=student_source,
        attendance_source=attendance_source,
        transport=transport,
        template_manager=TemplateManager(
            template_store,
            cache_ttl_seconds=settings.templates.cache_ttl_seconds,
        ),
        renderer=renderer,
        rate_limiter=RateLimiter(RateLimitConfig(**settings.rate_limit.model_dump())),
        error_manager=ErrorManager(
            RetryConfig(**settings.retry.model_dump()),
            HealthThresholds(**settings.health.model_dump()),
        ),
        history_store=history_store,
        phone_normalizer=PhoneNormalizer(settings.phone.country_code),
        local_timezone=ZoneInfo(settings.notifications.timezone),
        enforce_sending_window=settings.notifications.enforce_sending_window,
        bulk_phone_threshold=settings.notifications.bulk_phone_threshold,
        live=settings.whatsapp.enabled,
    )
