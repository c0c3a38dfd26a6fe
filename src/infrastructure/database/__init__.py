# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure.

This package provides SQLAlchemy async database connections for the
service database (message templates and notification history).

Example:
    from src.infrastructure.database import get_session, init_database

    await init_database(settings)

    async with get_session() as session:
        result = await session.execute(select(MessageTemplateModel))
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    build_engine,
    build_sessionmaker,
    check_database_connection,
    close_database,
    create_tables,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
    session_scope,
)
from src.infrastructure.database.models import (
    Base,
    MessageTemplateModel,
    NotificationHistoryModel,
)

__all__ = [
    # Connection
    "DatabaseError",
    "build_engine",
    "build_sessionmaker",
    "check_database_connection",
    "close_database",
    "create_tables",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    "session_scope",
    # Models
    "Base",
    "MessageTemplateModel",
    "NotificationHistoryModel",
]
