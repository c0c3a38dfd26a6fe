# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Store interfaces consumed by the notification core.

The student record store and the attendance store belong to the wider
academy system and are only read here. Templates and notification
history are owned by this service.

Implementations raise DatabaseError on backend failures.
"""

from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from src.domains.attendance.schemas import AttendanceRecord, StudentRecord
from src.domains.notification.schemas import HistoryStatistics, NotificationHistoryEntry
from src.domains.templates.schemas import MessageTemplate, TemplateCategory


@runtime_checkable
class StudentDataSource(Protocol):
    """Read access to student records."""

    async def get_student_data(self, student_id: str) -> StudentRecord | None:
        """Return the student, or None if unknown."""
        ...


@runtime_checkable
class AttendanceDataSource(Protocol):
    """Date-ranged attendance query."""

    async def get_attendance_records_in_range(
        self,
        start: date,
        end: date,
    ) -> list[AttendanceRecord]:
        """Return every attendance record with start <= date <= end."""
        ...


@runtime_checkable
class TemplateStore(Protocol):
    """Persistence for message templates."""

    async def list_all(self) -> list[MessageTemplate]:
        """All templates ordered by category, escalation level and name."""
        ...

    async def list_by_category(
        self,
        category: TemplateCategory,
        active_only: bool = True,
    ) -> list[MessageTemplate]:
        """Templates of a category ordered by escalation level then name."""
        ...

    async def get(self, template_id: str) -> MessageTemplate | None:
        ...

    async def create(self, template: MessageTemplate) -> MessageTemplate:
        """Persist a new template and return it with id and timestamps set."""
        ...

    async def update(self, template_id: str, changes: dict[str, Any]) -> MessageTemplate | None:
        """Apply field changes. Returns None if the template does not exist."""
        ...

    async def delete(self, template_id: str) -> bool:
        ...


@runtime_checkable
class HistoryStore(Protocol):
    """Append-only notification audit log."""

    async def append(self, entry: NotificationHistoryEntry) -> NotificationHistoryEntry:
        ...

    async def get_by_student(
        self,
        student_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[NotificationHistoryEntry]:
        """Entries for a student, newest first, optionally within [start, end]."""
        ...

    async def get_statistics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> HistoryStatistics:
        ...
