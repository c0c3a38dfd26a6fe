# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the in-memory stores."""

from datetime import timedelta

import pytest

from helpers import MONDAY, NOW, TODAY, absence
from src.domains.attendance import AttendanceDocument
from src.domains.notification import NotificationHistoryEntry
from src.domains.templates import MessageTemplate, TemplateCategory
from src.infrastructure.stores import (
    InMemoryAttendanceSource,
    InMemoryHistoryStore,
    InMemoryTemplateStore,
)


def entry(student_id: str, minutes: int, success: bool = True, **fields) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        student_id=student_id,
        phone="+584241234567",
        type=fields.pop("type", TemplateCategory.UNEXCUSED_ABSENCE),
        content="Hola",
        timestamp=NOW + timedelta(minutes=minutes),
        success=success,
        **fields,
    )


class TestInMemoryTemplateStore:
    """Tests for InMemoryTemplateStore."""

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, template_store: InMemoryTemplateStore) -> None:
        """Test new templates get an id and are stored as copies."""
        template = MessageTemplate(name="A", category=TemplateCategory.LATE, content="x")

        stored = await template_store.create(template)

        assert stored.id
        assert template.id is None
        assert await template_store.get(stored.id) == stored

    @pytest.mark.asyncio
    async def test_category_order(self, template_store: InMemoryTemplateStore) -> None:
        """Test level-less templates sort first, then by level and name."""
        for name, level in (("Nivel 2", 2), ("General", None), ("Nivel 1", 1)):
            await template_store.create(
                MessageTemplate(
                    name=name,
                    category=TemplateCategory.UNEXCUSED_ABSENCE,
                    escalation_level=level,
                    content="x",
                )
            )

        templates = await template_store.list_by_category(TemplateCategory.UNEXCUSED_ABSENCE)

        assert [t.name for t in templates] == ["General", "Nivel 1", "Nivel 2"]

    @pytest.mark.asyncio
    async def test_active_filter(self, template_store: InMemoryTemplateStore) -> None:
        """Test inactive templates are only listed on request."""
        await template_store.create(
            MessageTemplate(name="Off", category=TemplateCategory.LATE, content="x", is_active=False)
        )

        assert await template_store.list_by_category(TemplateCategory.LATE) == []
        assert len(await template_store.list_by_category(TemplateCategory.LATE, active_only=False)) == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, template_store: InMemoryTemplateStore) -> None:
        """Test partial updates and removal."""
        stored = await template_store.create(
            MessageTemplate(name="A", category=TemplateCategory.LATE, content="x")
        )

        updated = await template_store.update(stored.id, {"name": "B"})

        assert updated.name == "B"
        assert updated.content == "x"
        assert await template_store.update("missing", {"name": "C"}) is None
        assert await template_store.delete(stored.id) is True
        assert await template_store.delete(stored.id) is False


class TestInMemoryHistoryStore:
    """Tests for InMemoryHistoryStore."""

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, history_store: InMemoryHistoryStore) -> None:
        """Test a student's history is returned newest first."""
        for minutes in (0, 10, 5):
            await history_store.append(entry("s-1", minutes, weekly_count=minutes))
        await history_store.append(entry("s-2", 20))

        history = await history_store.get_by_student("s-1", limit=2)

        assert [e.weekly_count for e in history] == [10, 5]
        assert all(e.id for e in history)

    @pytest.mark.asyncio
    async def test_range_filter(self, history_store: InMemoryHistoryStore) -> None:
        """Test start and end bound the history inclusively."""
        for minutes in (0, 30, 60):
            await history_store.append(entry("s-1", minutes))

        history = await history_store.get_by_student(
            "s-1",
            start=NOW + timedelta(minutes=30),
            end=NOW + timedelta(minutes=60),
        )

        assert [e.timestamp for e in history] == [
            NOW + timedelta(minutes=60),
            NOW + timedelta(minutes=30),
        ]

    @pytest.mark.asyncio
    async def test_statistics(self, history_store: InMemoryHistoryStore) -> None:
        """Test totals and per-category counts."""
        await history_store.append(entry("s-1", 0))
        await history_store.append(entry("s-1", 1, success=False))
        await history_store.append(entry("s-2", 2, type=TemplateCategory.LATE))

        stats = await history_store.get_statistics()
        later = await history_store.get_statistics(start=NOW + timedelta(minutes=2))

        assert stats.total == 3
        assert stats.successful == 2
        assert stats.failed == 1
        assert stats.by_type == {"unexcused_absence": 2, "late": 1}
        assert later.total == 1


class TestInMemoryAttendanceSource:
    """Tests for InMemoryAttendanceSource."""

    @pytest.mark.asyncio
    async def test_range_query(self) -> None:
        """Test records outside the range are excluded."""
        source = InMemoryAttendanceSource(
            [absence("s-1", MONDAY - timedelta(days=1)), absence("s-1", MONDAY), absence("s-1", TODAY)]
        )

        records = await source.get_attendance_records_in_range(MONDAY, TODAY)

        assert [r.date for r in records] == [MONDAY, TODAY]

    @pytest.mark.asyncio
    async def test_documents_are_flattened(self) -> None:
        """Test class/day documents become per-student records."""
        source = InMemoryAttendanceSource()
        source.add(AttendanceDocument(class_id="cello-2", date=TODAY, absent=["s-1", "s-2"]))

        records = await source.get_attendance_records_in_range(TODAY, TODAY)

        assert sorted(r.student_id for r in records) == ["s-1", "s-2"]
        assert all(r.class_id == "cello-2" for r in records)
