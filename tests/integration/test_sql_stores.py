# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the SQL template and history stores."""

from datetime import timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpers import NOW, FakeClock
from src.domains.notification import NotificationHistoryEntry
from src.domains.templates import (
    MessageTemplate,
    MessageVariable,
    TemplateCategory,
    TemplateManager,
    TemplateUpdate,
)
from src.infrastructure.database import MessageTemplateModel, session_scope
from src.infrastructure.stores import SqlHistoryStore, SqlTemplateStore

pytestmark = pytest.mark.integration


@pytest.fixture
def sql_templates(sessionmaker: async_sessionmaker[AsyncSession]) -> SqlTemplateStore:
    """Provide a template store on the test database."""
    return SqlTemplateStore(sessionmaker)


@pytest.fixture
def sql_history(sessionmaker: async_sessionmaker[AsyncSession]) -> SqlHistoryStore:
    """Provide a history store on the test database."""
    return SqlHistoryStore(sessionmaker)


def history_entry(student_id: str, minutes: int, **fields) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        student_id=student_id,
        student_name="Ana Pérez",
        phone="+584241234567",
        type=fields.pop("type", TemplateCategory.UNEXCUSED_ABSENCE),
        content="Mensaje",
        timestamp=NOW + timedelta(minutes=minutes),
        success=fields.pop("success", True),
        **fields,
    )


class TestSqlTemplateStore:
    """Tests for SqlTemplateStore."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, sql_templates: SqlTemplateStore) -> None:
        """Test a template survives the round trip through the database."""
        created = await sql_templates.create(
            MessageTemplate(
                name="Tardanza",
                category=TemplateCategory.LATE,
                subject="Tardanza - {studentName}",
                content="{studentName} llegó tarde",
                variables=[MessageVariable(key="studentName", required=True)],
                created_at=NOW,
            )
        )

        loaded = await sql_templates.get(created.id)

        assert loaded == created
        assert loaded.variables[0].key == "studentName"
        assert loaded.variables[0].required is True
        assert loaded.created_at == NOW
        assert loaded.created_at.tzinfo == timezone.utc

    @pytest.mark.asyncio
    async def test_unknown_id(self, sql_templates: SqlTemplateStore) -> None:
        """Test missing templates are None, not errors."""
        assert await sql_templates.get("missing") is None
        assert await sql_templates.update("missing", {"name": "x"}) is None
        assert await sql_templates.delete("missing") is False

    @pytest.mark.asyncio
    async def test_category_order_puts_levelless_first(self, sql_templates: SqlTemplateStore) -> None:
        """Test NULL levels sort before numbered levels."""
        for name, level in (("Nivel 2", 2), ("Genérica", None), ("Nivel 1", 1)):
            await sql_templates.create(
                MessageTemplate(
                    name=name,
                    category=TemplateCategory.UNEXCUSED_ABSENCE,
                    escalation_level=level,
                    content="x",
                )
            )
        await sql_templates.create(
            MessageTemplate(
                name="Apagada",
                category=TemplateCategory.UNEXCUSED_ABSENCE,
                escalation_level=3,
                content="x",
                is_active=False,
            )
        )

        active = await sql_templates.list_by_category(TemplateCategory.UNEXCUSED_ABSENCE)
        everything = await sql_templates.list_by_category(
            TemplateCategory.UNEXCUSED_ABSENCE, active_only=False
        )

        assert [t.name for t in active] == ["Genérica", "Nivel 1", "Nivel 2"]
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_update_merges_changes(self, sql_templates: SqlTemplateStore) -> None:
        """Test only the given fields change."""
        created = await sql_templates.create(
            MessageTemplate(name="A", category=TemplateCategory.GENERAL, content="uno")
        )

        updated = await sql_templates.update(created.id, {"content": "dos", "is_active": False})

        assert updated.name == "A"
        assert updated.content == "dos"
        assert updated.is_active is False

    @pytest.mark.asyncio
    async def test_delete(
        self,
        sql_templates: SqlTemplateStore,
        sessionmaker: async_sessionmaker[AsyncSession],
    ) -> None:
        """Test a deleted template leaves no row."""
        created = await sql_templates.create(
            MessageTemplate(name="A", category=TemplateCategory.GENERAL, content="x")
        )

        assert await sql_templates.delete(created.id) is True

        async with session_scope(sessionmaker) as session:
            rows = (await session.execute(select(MessageTemplateModel))).scalars().all()
        assert rows == []


class TestTemplateManagerOnSql:
    """Tests for TemplateManager over the SQL store."""

    @pytest.mark.asyncio
    async def test_defaults_and_selection(self, sql_templates: SqlTemplateStore) -> None:
        """Test seeding and level selection against the database."""
        manager = TemplateManager(sql_templates, clock=FakeClock())

        assert await manager.initialize_defaults() == 6
        assert await manager.initialize_defaults() == 0

        selected = await manager.select_template(TemplateCategory.UNEXCUSED_ABSENCE, 3)
        assert selected.escalation_level == 3
        assert selected.is_system is True
        assert "URGENTE" in selected.subject

    @pytest.mark.asyncio
    async def test_update_and_usage(self, sql_templates: SqlTemplateStore) -> None:
        """Test manager updates and usage bookkeeping persist."""
        clock = FakeClock()
        manager = TemplateManager(sql_templates, clock=clock)
        template = await manager.create(
            MessageTemplate(name="Aviso", category=TemplateCategory.GENERAL, content="Hola")
        )

        clock.advance(60)
        assert await manager.update(template.id, TemplateUpdate(content="Hola de nuevo")) is True
        await manager.update_usage_stats(template.id, True)
        await manager.update_usage_stats(template.id, False)

        stored = await sql_templates.get(template.id)
        assert stored.content == "Hola de nuevo"
        assert stored.updated_at == NOW + timedelta(seconds=60)
        assert stored.usage.total_sent == 2
        assert stored.usage.success_rate == pytest.approx(0.5)


class TestSqlHistoryStore:
    """Tests for SqlHistoryStore."""

    @pytest.mark.asyncio
    async def test_append_assigns_id(self, sql_history: SqlHistoryStore) -> None:
        """Test appended entries come back with an id and aware timestamp."""
        stored = await sql_history.append(history_entry("s-1", 0, escalation_level=3, weekly_count=3))

        assert stored.id
        assert stored.timestamp == NOW
        assert stored.timestamp.tzinfo == timezone.utc
        assert stored.escalation_level == 3

    @pytest.mark.asyncio
    async def test_student_history_newest_first(self, sql_history: SqlHistoryStore) -> None:
        """Test ordering, limit and range filters."""
        for minutes in (0, 20, 10):
            await sql_history.append(history_entry("s-1", minutes))
        await sql_history.append(history_entry("s-2", 5))

        newest = await sql_history.get_by_student("s-1", limit=2)
        ranged = await sql_history.get_by_student(
            "s-1", start=NOW + timedelta(minutes=5), end=NOW + timedelta(minutes=15)
        )

        assert [e.timestamp for e in newest] == [
            NOW + timedelta(minutes=20),
            NOW + timedelta(minutes=10),
        ]
        assert [e.timestamp for e in ranged] == [NOW + timedelta(minutes=10)]

    @pytest.mark.asyncio
    async def test_statistics(self, sql_history: SqlHistoryStore) -> None:
        """Test totals grouped by message type."""
        await sql_history.append(history_entry("s-1", 0))
        await sql_history.append(history_entry("s-1", 1, success=False, error="rechazado"))
        await sql_history.append(history_entry("s-2", 2, type=TemplateCategory.LATE))

        stats = await sql_history.get_statistics()
        recent = await sql_history.get_statistics(start=NOW + timedelta(minutes=1))

        assert stats.total == 3
        assert stats.successful == 2
        assert stats.failed == 1
        assert stats.by_type == {"unexcused_absence": 2, "late": 1}
        assert recent.total == 2
