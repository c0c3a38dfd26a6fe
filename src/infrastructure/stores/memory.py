# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory store implementations.

Used for local development, dry runs and tests. Student and attendance
data are loaded by the caller; templates and history live only for the
lifetime of the process.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from uuid import uuid4

from src.domains.attendance.schemas import (
    AttendanceDocument,
    AttendanceRecord,
    StudentRecord,
)
from src.domains.notification.schemas import HistoryStatistics, NotificationHistoryEntry
from src.domains.templates.schemas import MessageTemplate, TemplateCategory
from src.utils.datetime import ensure_utc

_CATEGORY_ORDER = {category: index for index, category in enumerate(TemplateCategory)}


def _template_sort_key(template: MessageTemplate) -> tuple[int, int, int, str]:
    # Level-less templates first, matching SQL NULL ordering
    level = template.escalation_level
    return (
        _CATEGORY_ORDER[template.category],
        0 if level is None else 1,
        level or 0,
        template.name,
    )


class InMemoryStudentSource:
    """Student records keyed by id."""

    def __init__(self, students: Iterable[StudentRecord] = ()) -> None:
        self._students: dict[str, StudentRecord] = {s.id: s for s in students}

    def add(self, student: StudentRecord) -> None:
        self._students[student.id] = student

    async def get_student_data(self, student_id: str) -> StudentRecord | None:
        return self._students.get(student_id)


class InMemoryAttendanceSource:
    """Attendance records, loaded from records or class/day documents."""

    def __init__(self, records: Iterable[AttendanceRecord | AttendanceDocument] = ()) -> None:
        self._records: list[AttendanceRecord] = []
        self.add(*records)

    def add(self, *items: AttendanceRecord | AttendanceDocument) -> None:
        """Add records. Documents are flattened into records."""
        for item in items:
            if isinstance(item, AttendanceDocument):
                self._records.extend(item.to_records())
            else:
                self._records.append(item)

    async def get_attendance_records_in_range(
        self,
        start: date,
        end: date,
    ) -> list[AttendanceRecord]:
        return [r for r in self._records if start <= r.date <= end]


class InMemoryTemplateStore:
    """Template store backed by a dict."""

    def __init__(self) -> None:
        self._templates: dict[str, MessageTemplate] = {}

    async def list_all(self) -> list[MessageTemplate]:
        return sorted(self._templates.values(), key=_template_sort_key)

    async def list_by_category(
        self,
        category: TemplateCategory,
        active_only: bool = True,
    ) -> list[MessageTemplate]:
        templates = [
            t
            for t in self._templates.values()
            if t.category == category and (t.is_active or not active_only)
        ]
        return sorted(templates, key=_template_sort_key)

    async def get(self, template_id: str) -> MessageTemplate | None:
        return self._templates.get(template_id)

    async def create(self, template: MessageTemplate) -> MessageTemplate:
        stored = template.model_copy(update={"id": template.id or str(uuid4())}, deep=True)
        self._templates[stored.id] = stored
        return stored

    async def update(self, template_id: str, changes: dict[str, Any]) -> MessageTemplate | None:
        existing = self._templates.get(template_id)
        if existing is None:
            return None

        merged = MessageTemplate.model_validate({**existing.model_dump(), **changes})
        self._templates[template_id] = merged
        return merged

    async def delete(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None


class InMemoryHistoryStore:
    """Append-only list of history entries."""

    def __init__(self) -> None:
        self._entries: list[NotificationHistoryEntry] = []

    @property
    def entries(self) -> list[NotificationHistoryEntry]:
        """Entries in insertion order."""
        return list(self._entries)

    def _in_range(
        self,
        entry: NotificationHistoryEntry,
        start: datetime | None,
        end: datetime | None,
    ) -> bool:
        timestamp = ensure_utc(entry.timestamp)
        if start is not None and timestamp < ensure_utc(start):
            return False
        if end is not None and timestamp > ensure_utc(end):
            return False
        return True

    async def append(self, entry: NotificationHistoryEntry) -> NotificationHistoryEntry:
        stored = entry.model_copy(update={"id": entry.id or str(uuid4())})
        self._entries.append(stored)
        return stored

    async def get_by_student(
        self,
        student_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[NotificationHistoryEntry]:
        matches = [
            e
            for e in self._entries
            if e.student_id == student_id and self._in_range(e, start, end)
        ]
        matches.sort(key=lambda e: ensure_utc(e.timestamp), reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return matches

    async def get_statistics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> HistoryStatistics:
        stats = HistoryStatistics()
        for entry in self._entries:
            if not self._in_range(entry, start, end):
                continue
            stats.total += 1
            if entry.success:
                stats.successful += 1
            else:
                stats.failed += 1
            stats.by_type[entry.type.value] = stats.by_type.get(entry.type.value, 0) + 1
        return stats
