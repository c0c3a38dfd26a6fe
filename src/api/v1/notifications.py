# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification API endpoints.

This module provides endpoints to:
- Send attendance notifications to guardians
- Inspect delivery statistics
- Read the notification history of a student

Example:
    POST /api/v1/notifications/send
    GET /api/v1/notifications/statistics
    GET /api/v1/notifications/history/{student_id}
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_notification_service
from src.domains.notification import (
    HistoryStatistics,
    NotificationHistoryEntry,
    NotificationRequest,
    NotificationResult,
    NotificationService,
)
from src.infrastructure.stores.base import HistoryStore
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

router = APIRouter()


def _history_store(service: NotificationService) -> HistoryStore:
    if service.history_store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification history is not configured",
        )
    return service.history_store


# =============================================================================
# Sending
# =============================================================================


@router.post("/send", response_model=NotificationResult)
async def send_notifications(
    request: NotificationRequest,
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResult:
    """Notify the guardians of a group of students.

    Aborted batches (invalid data, quiet hours, CRITICAL delivery
    health) are reported in the body with success false.
    """
    bind_context(category=request.category.value, students=len(request.student_ids))
    try:
        return await service.send_notifications(request)
    finally:
        clear_context()


# =============================================================================
# Statistics
# =============================================================================


@router.get("/statistics")
async def get_statistics(
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Get delivery health, rate-limit budget and error statistics."""
    return asdict(service.get_system_statistics())


@router.get("/statistics/history", response_model=HistoryStatistics)
async def get_history_statistics(
    start: datetime | None = Query(None, description="Only entries at or after this time"),
    end: datetime | None = Query(None, description="Only entries at or before this time"),
    service: NotificationService = Depends(get_notification_service),
) -> HistoryStatistics:
    """Count history entries by outcome and message type."""
    return await _history_store(service).get_statistics(start, end)


# =============================================================================
# History
# =============================================================================


@router.get("/history/{student_id}", response_model=list[NotificationHistoryEntry])
async def get_student_history(
    student_id: str,
    start: datetime | None = Query(None, description="Only entries at or after this time"),
    end: datetime | None = Query(None, description="Only entries at or before this time"),
    limit: int | None = Query(50, ge=1, le=500),
    service: NotificationService = Depends(get_notification_service),
) -> list[NotificationHistoryEntry]:
    """Get the notifications sent about a student, newest first."""
    return await _history_store(service).get_by_student(student_id, start, end, limit)
