# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification request, result and history schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from src.domains.attendance.schemas import ClassInfo
from src.domains.templates.schemas import TemplateCategory
from src.infrastructure.notifications.errors import HealthStatus


class NotificationPhase(str, Enum):
    """Phases of a notification batch, reported to progress callbacks."""

    VALIDATING = "validating"
    HEALTH_CHECK = "health_check"
    RENDERING = "rendering"
    SENDING = "sending"
    COMPLETED = "completed"
    ABORTED = "aborted"


class NotificationRequest(BaseModel):
    """Request to notify the guardians of a group of students.

    Attributes:
        student_ids: Students to notify. Repeated ids are dropped,
            keeping the first occurrence.
        category: Message category.
        template_id: Explicit template; otherwise one is selected by
            category and escalation level.
        custom_message: Free text sent instead of a template.
        class_info: Class the event happened in.
        attendance_date: Day of the event. Also the end of the week
            used for escalation counting.
        custom_variables: Extra template values.
        dry_run: Validate and render without sending.
    """

    student_ids: list[str] = Field(min_length=1)
    category: TemplateCategory
    template_id: str | None = None
    custom_message: str | None = None
    class_info: ClassInfo | None = None
    attendance_date: date | None = None
    custom_variables: dict[str, str] = Field(default_factory=dict)
    dry_run: bool = False

    @field_validator("student_ids")
    @classmethod
    def drop_repeated_ids(cls, value: list[str]) -> list[str]:
        """Keep one entry per student so no guardian is messaged twice."""
        return list(dict.fromkeys(value))


class PhoneDeliveryResult(BaseModel):
    """Outcome of delivering one message to one phone."""

    phone: str
    success: bool
    rate_limited: bool = False
    error: str | None = None


class StudentNotificationResult(BaseModel):
    """Per-student outcome of a batch.

    A student counts as successful only when every phone was reached.
    notified_phones lists the phones that were reached, so partial
    deliveries are visible.
    """

    student_id: str
    student_name: str = ""
    phone_numbers: list[str] = Field(default_factory=list)
    success: bool = False
    skipped: bool = False
    error: str | None = None
    escalation_level: int | None = None
    weekly_absences: int | None = None
    phone_results: list[PhoneDeliveryResult] = Field(default_factory=list)
    notified_phones: list[str] = Field(default_factory=list)


class NotificationSummary(BaseModel):
    """Batch counters.

    total and invalid count students. successful, failed and
    rate_limited count messages.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    rate_limited: int = 0
    invalid: int = 0


class ValidationSummary(BaseModel):
    """Validation outcome of a batch."""

    valid_students: int = 0
    invalid_students: int = 0
    recommendations: list[str] = Field(default_factory=list)


class PerformanceSummary(BaseModel):
    """Timing of a batch, in seconds."""

    total_duration: float = 0.0
    average_time_per_message: float = 0.0
    retry_attempts: int = 0


class HealthStatusSummary(BaseModel):
    """Delivery health as seen by the batch."""

    system_status: HealthStatus = HealthStatus.HEALTHY
    can_continue: bool = True
    warnings: list[str] = Field(default_factory=list)


class NotificationResult(BaseModel):
    """Full report of one notification batch."""

    success: bool
    phase: NotificationPhase = NotificationPhase.COMPLETED
    dry_run: bool = False
    message: str = ""
    summary: NotificationSummary = Field(default_factory=NotificationSummary)
    validation: ValidationSummary = Field(default_factory=ValidationSummary)
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    health_status: HealthStatusSummary = Field(default_factory=HealthStatusSummary)
    detailed_results: list[StudentNotificationResult] = Field(default_factory=list)


class NotificationHistoryEntry(BaseModel):
    """Audit record of one delivery attempt.

    Attributes:
        student_id: Student the message was about.
        student_name: Full name at send time.
        phone: Normalized destination phone.
        type: Message category.
        content: Rendered message text.
        timestamp: When the attempt finished.
        success: Whether the transport accepted the message.
        escalation_level: Level of an unexcused absence message.
        weekly_count: Weekly unexcused absences at send time.
        template_id: Template used, if any.
        error: Failure description.
    """

    id: str | None = None
    student_id: str
    student_name: str = ""
    phone: str
    type: TemplateCategory
    content: str
    timestamp: datetime
    success: bool
    escalation_level: int | None = None
    weekly_count: int | None = None
    template_id: str | None = None
    error: str | None = None


class HistoryStatistics(BaseModel):
    """Aggregated history counters."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
