# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the notification batch orchestrator."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from helpers import MONDAY, NOW, FakeClock, FakeTransport
from src.core.config import Settings
from src.domains.notification import (
    NO_ABSENCES_MESSAGE,
    NotificationPhase,
    NotificationRequest,
    NotificationService,
    build_notification_service,
)
from src.domains.templates import (
    MessageTemplate,
    MessageVariable,
    TemplateCategory,
    TemplateManager,
    TemplateRenderer,
)
from src.infrastructure.database import DatabaseError
from src.infrastructure.notifications import (
    ErrorKind,
    ErrorManager,
    HealthStatus,
    RateLimitConfig,
    RateLimiter,
    WhatsAppChannel,
)
from src.infrastructure.stores import (
    InMemoryAttendanceSource,
    InMemoryHistoryStore,
    InMemoryStudentSource,
    InMemoryTemplateStore,
)

ANA_PHONES = ["+584241234567", "+584147654321"]


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    """Provide a limiter without cooldown on the fake clock."""
    return RateLimiter(RateLimitConfig(cooldown_seconds=0), clock=clock, sleep=clock.sleep)


@pytest.fixture
def error_manager(clock: FakeClock) -> ErrorManager:
    """Provide an error manager on the fake clock."""
    return ErrorManager(clock=clock, sleep=clock.sleep)


@pytest.fixture
def make_service(
    student_source: InMemoryStudentSource,
    attendance_source: InMemoryAttendanceSource,
    transport: FakeTransport,
    template_manager: TemplateManager,
    rate_limiter: RateLimiter,
    error_manager: ErrorManager,
    history_store: InMemoryHistoryStore,
    clock: FakeClock,
):
    """Provide a factory for services sharing the test doubles."""

    def factory(**overrides) -> NotificationService:
        options = {
            "student_source": student_source,
            "attendance_source": attendance_source,
            "transport": transport,
            "template_manager": template_manager,
            "renderer": TemplateRenderer(clock=clock),
            "rate_limiter": rate_limiter,
            "error_manager": error_manager,
            "history_store": history_store,
            "clock": clock,
        }
        options.update(overrides)
        return NotificationService(**options)

    return factory


@pytest.fixture
def service(make_service) -> NotificationService:
    """Provide a live service."""
    return make_service()


def absence_request(*student_ids: str, **options) -> NotificationRequest:
    return NotificationRequest(
        student_ids=list(student_ids) or ["s-1"],
        category=TemplateCategory.UNEXCUSED_ABSENCE,
        **options,
    )


class TestEscalatedDelivery:
    """Tests for unexcused absence batches."""

    @pytest.mark.asyncio
    async def test_third_absence_uses_level_three(
        self,
        service: NotificationService,
        transport: FakeTransport,
        template_manager: TemplateManager,
    ) -> None:
        """Test a student with three absences gets the level 3 message on every phone."""
        result = await service.send_notifications(absence_request("s-1"))

        level_three = await template_manager.select_template(TemplateCategory.UNEXCUSED_ABSENCE, 3)
        assert result.success is True
        assert result.phase == NotificationPhase.COMPLETED
        assert result.summary.successful == 2
        assert result.summary.failed == 0
        assert [phone for phone, _ in transport.sent] == ANA_PHONES

        text = transport.sent[0][1]
        assert "Ana Pérez" in text
        assert "3 ausencias" in text
        assert "TERCERA" in text

        detail = result.detailed_results[0]
        assert detail.success is True
        assert detail.escalation_level == 3
        assert detail.weekly_absences == 3
        assert detail.notified_phones == ANA_PHONES
        assert "URGENTE" in level_three.subject
        assert result.message == "Proceso completado: 2 enviados, 0 fallidos, 0 limitados"

    @pytest.mark.asyncio
    async def test_repeated_student_is_sent_once(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test a student listed twice is notified once per phone."""
        result = await service.send_notifications(absence_request("s-1", "s-1", "s-2", "s-1"))

        assert result.summary.total == 2
        assert [phone for phone, _ in transport.sent] == ANA_PHONES
        assert [detail.student_id for detail in result.detailed_results] == ["s-1", "s-2"]

    @pytest.mark.asyncio
    async def test_history_and_usage(
        self,
        service: NotificationService,
        history_store: InMemoryHistoryStore,
        template_manager: TemplateManager,
    ) -> None:
        """Test each delivery is recorded and counted against its template."""
        await service.send_notifications(absence_request("s-1"))

        level_three = await template_manager.select_template(TemplateCategory.UNEXCUSED_ABSENCE, 3)
        entries = history_store.entries
        assert [entry.phone for entry in entries] == ANA_PHONES
        assert all(entry.template_id == level_three.id for entry in entries)
        assert all(entry.escalation_level == 3 for entry in entries)
        assert all(entry.weekly_count == 3 for entry in entries)
        assert all(entry.timestamp == NOW for entry in entries)
        assert level_three.usage.total_sent == 2
        assert level_three.usage.success_rate == pytest.approx(1.0)
        assert level_three.usage.last_used == NOW

    @pytest.mark.asyncio
    async def test_student_without_absences_is_skipped(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test a justified absence alone sends nothing."""
        result = await service.send_notifications(absence_request("s-1", "s-2"))

        skipped = next(d for d in result.detailed_results if d.student_id == "s-2")
        assert skipped.skipped is True
        assert skipped.success is False
        assert skipped.error == NO_ABSENCES_MESSAGE
        assert skipped.weekly_absences == 0
        assert skipped.escalation_level is None
        assert {phone for phone, _ in transport.sent} == set(ANA_PHONES)

    @pytest.mark.asyncio
    async def test_attendance_date_sets_the_week(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test counting stops at the requested day."""
        result = await service.send_notifications(
            absence_request("s-1", attendance_date=MONDAY)
        )

        assert result.detailed_results[0].escalation_level == 1
        assert "Notamos la ausencia" in transport.sent[0][1]


class TestValidationOutcomes:
    """Tests for batches with invalid input."""

    @pytest.mark.asyncio
    async def test_invalid_student_is_reported(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test an unreachable student does not stop the others."""
        result = await service.send_notifications(
            NotificationRequest(student_ids=["s-1", "s-2", "s-3"], category=TemplateCategory.LATE)
        )

        assert result.success is True
        assert result.summary.total == 3
        assert result.summary.invalid == 1
        assert result.summary.successful == 3
        assert result.validation.valid_students == 2
        assert result.validation.invalid_students == 1
        invalid = next(d for d in result.detailed_results if d.student_id == "s-3")
        assert "Al menos un número telefónico válido es requerido" in invalid.error
        assert len(transport.sent) == 3

    @pytest.mark.asyncio
    async def test_missing_required_variable(
        self,
        service: NotificationService,
        transport: FakeTransport,
        template_manager: TemplateManager,
    ) -> None:
        """Test a template needing an unknown teacher sends nothing."""
        template = await template_manager.create(
            MessageTemplate(
                name="Tardanza con maestro",
                category=TemplateCategory.LATE,
                content="{studentName} llegó tarde a la clase de {teacherName}",
                variables=[MessageVariable(key="teacherName", required=True)],
            )
        )

        result = await service.send_notifications(
            NotificationRequest(
                student_ids=["s-1"],
                category=TemplateCategory.LATE,
                template_id=template.id,
            )
        )

        assert result.success is False
        assert result.message == "No hay mensajes para enviar"
        assert "teacherName" in result.detailed_results[0].error
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_unknown_template_aborts(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test a requested template that does not exist."""
        result = await service.send_notifications(absence_request("s-1", template_id="missing"))

        assert result.success is False
        assert result.phase == NotificationPhase.ABORTED
        assert result.message == "Plantilla no encontrada: missing"
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_no_valid_students_aborts(self, service: NotificationService) -> None:
        """Test a batch of unreachable students."""
        result = await service.send_notifications(absence_request("s-3", "s-404"))

        assert result.phase == NotificationPhase.ABORTED
        assert result.message.startswith("Validación falló:")
        assert "Ningún estudiante tiene datos válidos para notificar" in result.message
        assert result.summary.invalid == 2

    @pytest.mark.asyncio
    async def test_quiet_hours_abort(
        self, service: NotificationService, transport: FakeTransport, clock: FakeClock
    ) -> None:
        """Test real sends are blocked at night."""
        clock.now = NOW.replace(hour=23, minute=30)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.phase == NotificationPhase.ABORTED
        assert "No se pueden enviar notificaciones entre 11:00 PM y 6:00 AM" in result.message
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_quiet_hours_allow_dry_run(
        self, service: NotificationService, clock: FakeClock
    ) -> None:
        """Test a dry run at night still renders."""
        clock.now = NOW.replace(hour=23, minute=30)

        result = await service.send_notifications(absence_request("s-1", dry_run=True))

        assert result.success is True
        assert result.phase == NotificationPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_sending_window_can_be_disabled(
        self, make_service, transport: FakeTransport, clock: FakeClock
    ) -> None:
        """Test quiet hours do not block when enforcement is off."""
        clock.now = NOW.replace(hour=23, minute=30)
        service = make_service(enforce_sending_window=False)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.success is True
        assert len(transport.sent) == 2


class TestHealthGate:
    """Tests for the delivery health check."""

    @pytest.mark.asyncio
    async def test_critical_health_stops_before_sending(
        self, make_service, error_manager: ErrorManager, transport: FakeTransport
    ) -> None:
        """Test an authentication failure blocks the next batch."""
        error_manager.log_error("401 Unauthorized", "send:+584241234567", ErrorKind.AUTH_ERROR)
        limiter = MagicMock(spec=RateLimiter)
        service = make_service(rate_limiter=limiter)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.success is False
        assert result.phase == NotificationPhase.ABORTED
        assert result.health_status.system_status == HealthStatus.CRITICAL
        assert result.health_status.can_continue is False
        assert result.message == "Sistema en estado crítico. Suspendiendo envíos automáticos."
        assert limiter.mock_calls == []
        assert transport.sent == []


class TestCollaboratorFailures:
    """Tests for data sources failing mid-batch."""

    @pytest.mark.asyncio
    async def test_attendance_outage_aborts(
        self, make_service, transport: FakeTransport, history_store: InMemoryHistoryStore
    ) -> None:
        """Test an unreachable attendance store ends the batch with a result."""
        attendance = AsyncMock()
        attendance.get_attendance_records_in_range.side_effect = ConnectionError("attendance store unreachable")
        service = make_service(attendance_source=attendance)

        result = await service.send_notifications(absence_request("s-1", "s-2"))

        assert result.success is False
        assert result.phase == NotificationPhase.ABORTED
        assert result.message == "No se pudo consultar la asistencia: attendance store unreachable"
        assert result.summary.successful == 0
        assert transport.sent == []
        assert await history_store.get_by_student("s-1") == []

    @pytest.mark.asyncio
    async def test_attendance_outage_spares_late_notices(
        self, make_service, transport: FakeTransport
    ) -> None:
        """Test categories without escalation never query attendance."""
        attendance = AsyncMock()
        attendance.get_attendance_records_in_range.side_effect = ConnectionError("down")
        service = make_service(attendance_source=attendance)

        result = await service.send_notifications(
            NotificationRequest(student_ids=["s-2"], category=TemplateCategory.LATE)
        )

        assert result.success is True
        assert [phone for phone, _ in transport.sent] == ["+584121112233"]
        attendance.get_attendance_records_in_range.assert_not_called()


class TestDryRun:
    """Tests for simulated batches."""

    @pytest.mark.asyncio
    async def test_dry_run_sends_nothing(
        self,
        service: NotificationService,
        transport: FakeTransport,
        history_store: InMemoryHistoryStore,
    ) -> None:
        """Test a dry run renders without delivering."""
        result = await service.send_notifications(absence_request("s-1", dry_run=True))

        assert result.success is True
        assert result.dry_run is True
        assert result.summary.successful == 2
        assert result.message == "Simulación completada: 2 mensajes preparados"
        assert result.detailed_results[0].success is True
        assert transport.sent == []
        assert history_store.entries == []

    @pytest.mark.asyncio
    async def test_disabled_delivery_forces_dry_run(
        self, make_service, transport: FakeTransport
    ) -> None:
        """Test a service that is not live never delivers."""
        service = make_service(live=False)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.dry_run is True
        assert transport.sent == []


class TestDelivery:
    """Tests for per-phone delivery outcomes."""

    @pytest.mark.asyncio
    async def test_partial_delivery(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test a student is failed when one of two phones rejects."""
        transport.script(ANA_PHONES[1], False)

        result = await service.send_notifications(absence_request("s-1"))

        detail = result.detailed_results[0]
        assert result.success is True
        assert result.summary.successful == 1
        assert result.summary.failed == 1
        assert detail.success is False
        assert detail.notified_phones == [ANA_PHONES[0]]
        assert detail.error == "El transporte rechazó el mensaje"
        assert [r.success for r in detail.phone_results] == [True, False]

    @pytest.mark.asyncio
    async def test_rejection_is_not_retried(
        self, service: NotificationService, transport: FakeTransport
    ) -> None:
        """Test a refused message is attempted once."""
        transport.script(ANA_PHONES[0], False)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.performance.retry_attempts == 0
        assert [phone for phone, _ in transport.sent].count(ANA_PHONES[0]) == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, service: NotificationService, transport: FakeTransport, clock: FakeClock
    ) -> None:
        """Test a network error is retried after the backoff delay."""
        transport.script(ANA_PHONES[0], ConnectionError("reset"), True)

        result = await service.send_notifications(absence_request("s-1"))

        assert result.summary.successful == 2
        assert result.performance.retry_attempts == 1
        assert clock.sleeps == [1.0]
        assert result.detailed_results[0].success is True

    @pytest.mark.asyncio
    async def test_custom_message(
        self,
        service: NotificationService,
        transport: FakeTransport,
        history_store: InMemoryHistoryStore,
    ) -> None:
        """Test free text replaces the template and is still personalized."""
        result = await service.send_notifications(
            NotificationRequest(
                student_ids=["s-2"],
                category=TemplateCategory.GENERAL,
                custom_message="Hola {studentFirstName}, el ensayo general es el sábado.",
            )
        )

        assert result.success is True
        assert transport.sent == [("+584121112233", "Hola Luis, el ensayo general es el sábado.")]
        assert history_store.entries[0].template_id is None

    @pytest.mark.asyncio
    async def test_history_failure_does_not_abort(
        self, service: NotificationService, history_store: InMemoryHistoryStore
    ) -> None:
        """Test a failing audit write is logged and delivery continues."""

        with patch.object(history_store, "append", side_effect=DatabaseError("disk full")):
            result = await service.send_notifications(absence_request("s-1"))

        assert result.success is True
        assert result.summary.successful == 2


class TestProgressAndStatistics:
    """Tests for progress callbacks and statistics."""

    @pytest.mark.asyncio
    async def test_progress_phases(self, service: NotificationService) -> None:
        """Test phases are reported in order."""
        calls = []

        await service.send_notifications(
            absence_request("s-1"),
            on_progress=lambda phase, done, total, current: calls.append((phase, done, total, current)),
        )

        phases = list(dict.fromkeys(call[0] for call in calls))
        assert phases == [
            NotificationPhase.VALIDATING,
            NotificationPhase.HEALTH_CHECK,
            NotificationPhase.RENDERING,
            NotificationPhase.SENDING,
            NotificationPhase.COMPLETED,
        ]
        sending = [call[1:] for call in calls if call[0] == NotificationPhase.SENDING]
        assert sending == [(0, 2, ANA_PHONES[0]), (1, 2, ANA_PHONES[1]), (2, 2, "")]

    @pytest.mark.asyncio
    async def test_system_statistics(self, service: NotificationService) -> None:
        """Test the combined statistics snapshot."""
        await service.send_notifications(absence_request("s-1"))

        stats = service.get_system_statistics()

        assert stats.health.status == HealthStatus.HEALTHY
        assert stats.rate_limits.successful_sends == 2
        assert stats.errors.total_errors == 0


class TestBuildNotificationService:
    """Tests for wiring from settings."""

    def test_build_from_settings(
        self,
        student_source: InMemoryStudentSource,
        attendance_source: InMemoryAttendanceSource,
        transport: FakeTransport,
    ) -> None:
        """Test collaborators pick up configured values."""
        settings = Settings(
            rate_limit={"max_per_minute": 3, "cooldown_seconds": 0.5},
            retry={"max_attempts": 2},
            notifications={"enforce_sending_window": False},
            whatsapp={"enabled": True},
        )

        service = build_notification_service(
            settings,
            student_source,
            attendance_source,
            InMemoryTemplateStore(),
            transport=transport,
        )

        assert service.live is True
        assert service.enforce_sending_window is False
        assert service.rate_limiter.config.max_per_minute == 3
        assert service.rate_limiter.config.cooldown_seconds == 0.5
        assert service.error_manager.config.max_attempts == 2
        assert service.transport is transport
        assert service.history_store is None

    def test_default_transport_is_whatsapp(
        self,
        student_source: InMemoryStudentSource,
        attendance_source: InMemoryAttendanceSource,
    ) -> None:
        """Test the gateway channel is used when no transport is given."""

        service = build_notification_service(
            Settings(), student_source, attendance_source, InMemoryTemplateStore()
        )

        assert isinstance(service.transport, WhatsAppChannel)
        assert service.live is False
