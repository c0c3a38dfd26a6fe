# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementations of the template and history stores.

Each operation runs in its own session opened from the injected
sessionmaker. SQLAlchemy errors surface as DatabaseError.

Example:
    from src.infrastructure.database import get_sessionmaker
    from src.infrastructure.stores.sql import SqlTemplateStore

    store = SqlTemplateStore(get_sessionmaker())
    templates = await store.list_all()
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.notification.schemas import HistoryStatistics, NotificationHistoryEntry
from src.domains.templates.schemas import MessageTemplate, TemplateCategory
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import MessageTemplateModel, NotificationHistoryModel
from src.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


def _template_from_row(row: MessageTemplateModel) -> MessageTemplate:
    return MessageTemplate(
        id=row.id,
        name=row.name,
        description=row.description,
        category=TemplateCategory(row.category),
        escalation_level=row.escalation_level,
        subject=row.subject,
        content=row.content,
        variables=row.variables or [],
        is_active=row.is_active,
        is_system=row.is_system,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        created_by=row.created_by,
        usage=row.usage or {},
    )


def _apply_template(row: MessageTemplateModel, template: MessageTemplate) -> None:
    data = template.model_dump(mode="json")
    row.name = template.name
    row.description = template.description
    row.category = template.category.value
    row.escalation_level = template.escalation_level
    row.subject = template.subject
    row.content = template.content
    row.variables = data["variables"]
    row.is_active = template.is_active
    row.is_system = template.is_system
    row.created_at = ensure_utc(template.created_at)
    row.updated_at = ensure_utc(template.updated_at)
    row.created_by = template.created_by
    row.usage = data["usage"]


def _entry_from_row(row: NotificationHistoryModel) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        id=row.id,
        student_id=row.student_id,
        student_name=row.student_name,
        phone=row.phone,
        type=TemplateCategory(row.type),
        content=row.content,
        timestamp=ensure_utc(row.timestamp),
        success=row.success,
        escalation_level=row.escalation_level,
        weekly_count=row.weekly_count,
        template_id=row.template_id,
        error=row.error,
    )


def _ordered(stmt: Any) -> Any:
    return stmt.order_by(
        MessageTemplateModel.category,
        MessageTemplateModel.escalation_level,
        MessageTemplateModel.name,
    )


class SqlTemplateStore:
    """Template store on the service database."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def list_all(self) -> list[MessageTemplate]:
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(_ordered(select(MessageTemplateModel)))
            return [_template_from_row(row) for row in result.scalars().all()]

    async def list_by_category(
        self,
        category: TemplateCategory,
        active_only: bool = True,
    ) -> list[MessageTemplate]:
        stmt = select(MessageTemplateModel).where(MessageTemplateModel.category == category.value)
        if active_only:
            stmt = stmt.where(MessageTemplateModel.is_active.is_(True))

        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(_ordered(stmt))
            return [_template_from_row(row) for row in result.scalars().all()]

    async def get(self, template_id: str) -> MessageTemplate | None:
        async with session_scope(self._sessionmaker) as session:
            row = await session.get(MessageTemplateModel, template_id)
            return _template_from_row(row) if row is not None else None

    async def create(self, template: MessageTemplate) -> MessageTemplate:
        row = MessageTemplateModel()
        if template.id:
            row.id = template.id
        _apply_template(row, template)

        async with session_scope(self._sessionmaker) as session:
            session.add(row)
            await session.flush()
            created = _template_from_row(row)

        logger.debug("Stored template %s", created.id)
        return created

    async def update(self, template_id: str, changes: dict[str, Any]) -> MessageTemplate | None:
        async with session_scope(self._sessionmaker) as session:
            row = await session.get(MessageTemplateModel, template_id)
            if row is None:
                return None

            current = _template_from_row(row)
            merged = MessageTemplate.model_validate({**current.model_dump(), **changes})
            _apply_template(row, merged)
            await session.flush()
            return _template_from_row(row)

    async def delete(self, template_id: str) -> bool:
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(
                delete(MessageTemplateModel).where(MessageTemplateModel.id == template_id)
            )
            return result.rowcount > 0


class SqlHistoryStore:
    """Notification history on the service database."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @staticmethod
    def _within(stmt: Any, start: datetime | None, end: datetime | None) -> Any:
        if start is not None:
            stmt = stmt.where(NotificationHistoryModel.timestamp >= ensure_utc(start))
        if end is not None:
            stmt = stmt.where(NotificationHistoryModel.timestamp <= ensure_utc(end))
        return stmt

    async def append(self, entry: NotificationHistoryEntry) -> NotificationHistoryEntry:
        row = NotificationHistoryModel(
            student_id=entry.student_id,
            student_name=entry.student_name,
            phone=entry.phone,
            type=entry.type.value,
            content=entry.content,
            timestamp=ensure_utc(entry.timestamp),
            success=entry.success,
            escalation_level=entry.escalation_level,
            weekly_count=entry.weekly_count,
            template_id=entry.template_id,
            error=entry.error,
        )
        if entry.id:
            row.id = entry.id

        async with session_scope(self._sessionmaker) as session:
            session.add(row)
            await session.flush()
            return _entry_from_row(row)

    async def get_by_student(
        self,
        student_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[NotificationHistoryEntry]:
        stmt = select(NotificationHistoryModel).where(
            NotificationHistoryModel.student_id == student_id
        )
        stmt = self._within(stmt, start, end).order_by(NotificationHistoryModel.timestamp.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            return [_entry_from_row(row) for row in result.scalars().all()]

    async def get_statistics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> HistoryStatistics:
        stmt = select(
            NotificationHistoryModel.type,
            func.count(),
            func.sum(case((NotificationHistoryModel.success.is_(True), 1), else_=0)),
        ).group_by(NotificationHistoryModel.type)
        stmt = self._within(stmt, start, end)

        stats = HistoryStatistics()
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            for message_type, count, successes in result.all():
                successes = int(successes or 0)
                stats.total += count
                stats.successful += successes
                stats.failed += count - successes
                stats.by_type[message_type] = count
        return stats
