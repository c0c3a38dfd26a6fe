# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module wires the notification service at startup and provides
dependency functions for FastAPI endpoints:
- Get the notification service
- Get the template manager and renderer

Student and attendance data belong to the wider academy system. The
embedding application passes its own sources to create_app(); without
them the service starts with empty in-memory sources.

Example:
    @router.post("/send")
    async def send(
        request: NotificationRequest,
        service: NotificationService = Depends(get_notification_service),
    ):
        ...
"""

import logging
from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, status

from src.core.config import Settings
from src.domains.notification import NotificationService, build_notification_service
from src.domains.templates import TemplateManager, TemplateRenderer
from src.infrastructure.database import close_database, get_sessionmaker, init_database
from src.infrastructure.stores import (
    InMemoryAttendanceSource,
    InMemoryStudentSource,
    SqlHistoryStore,
    SqlTemplateStore,
)

if TYPE_CHECKING:
    from src.infrastructure.notifications.channels.base import MessageTransport
    from src.infrastructure.stores.base import AttendanceDataSource, StudentDataSource

logger = logging.getLogger(__name__)

# Notification service singleton, created at startup
_notification_service: NotificationService | None = None


async def init_services(
    settings: Settings,
    student_source: "StudentDataSource | None" = None,
    attendance_source: "AttendanceDataSource | None" = None,
    transport: "MessageTransport | None" = None,
) -> NotificationService:
    """Initialize the database and the notification service.

    Seeds the default templates into an empty template table.

    Args:
        settings: Application settings.
        student_source: Student record store.
        attendance_source: Attendance query.
        transport: Message transport; the WhatsApp gateway when None.

    Returns:
        The initialized service.
    """
    global _notification_service

    await init_database(settings)
    sessionmaker = get_sessionmaker()

    _notification_service = build_notification_service(
        settings,
        student_source=student_source or InMemoryStudentSource(),
        attendance_source=attendance_source or InMemoryAttendanceSource(),
        template_store=SqlTemplateStore(sessionmaker),
        history_store=SqlHistoryStore(sessionmaker),
        transport=transport,
    )

    created = await _notification_service.template_manager.initialize_defaults()
    if created:
        logger.info("Seeded %d default templates", created)

    return _notification_service


async def close_services() -> None:
    """Drop the service and close database connections."""
    global _notification_service

    _notification_service = None
    await close_database()


def get_notification_service() -> NotificationService:
    """Get the notification service.

    Raises:
        HTTPException: If the service has not been initialized.
    """
    if _notification_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification service not initialized",
        )
    return _notification_service


def get_template_manager(
    service: NotificationService = Depends(get_notification_service),
) -> TemplateManager:
    """Get the template manager shared with the notification service."""
    return service.template_manager


def get_template_renderer(
    service: NotificationService = Depends(get_notification_service),
) -> TemplateRenderer:
    """Get the template renderer shared with the notification service."""
    return service.renderer
