# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification domain.

This domain sends attendance notifications to guardians:
- NotificationValidator: student contacts, sending time, message content
- NotificationService: the batch orchestrator
- build_notification_service: wiring from settings
"""

from src.domains.notification.schemas import (
    HealthStatusSummary,
    HistoryStatistics,
    NotificationHistoryEntry,
    NotificationPhase,
    NotificationRequest,
    NotificationResult,
    NotificationSummary,
    PerformanceSummary,
    PhoneDeliveryResult,
    StudentNotificationResult,
    ValidationSummary,
)
from src.domains.notification.service import (
    NO_ABSENCES_MESSAGE,
    AttendanceUnavailableError,
    NotificationService,
    NotificationServiceError,
    ProgressCallback,
    SystemStatistics,
    SystemUnhealthyError,
    TemplateUnavailableError,
    ValidationFailedError,
    build_notification_service,
)
from src.domains.notification.validation import (
    BulkValidation,
    NotificationValidator,
    RequestValidation,
    StudentValidation,
    ValidationOutcome,
)

__all__ = [
    # Schemas
    "HealthStatusSummary",
    "HistoryStatistics",
    "NotificationHistoryEntry",
    "NotificationPhase",
    "NotificationRequest",
    "NotificationResult",
    "NotificationSummary",
    "PerformanceSummary",
    "PhoneDeliveryResult",
    "StudentNotificationResult",
    "ValidationSummary",
    # Service
    "AttendanceUnavailableError",
    "NO_ABSENCES_MESSAGE",
    "NotificationService",
    "NotificationServiceError",
    "ProgressCallback",
    "SystemStatistics",
    "SystemUnhealthyError",
    "TemplateUnavailableError",
    "ValidationFailedError",
    "build_notification_service",
    # Validation
    "BulkValidation",
    "NotificationValidator",
    "RequestValidation",
    "StudentValidation",
    "ValidationOutcome",
]
