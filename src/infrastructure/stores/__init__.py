# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data stores used by the notification service.

Interfaces:
- StudentDataSource, AttendanceDataSource: read-only academy data
- TemplateStore, HistoryStore: data owned by this service

Implementations:
- In-memory stores for development and tests
- SQL stores on the service database
"""

from src.infrastructure.stores.base import (
    AttendanceDataSource,
    HistoryStore,
    StudentDataSource,
    TemplateStore,
)
from src.infrastructure.stores.memory import (
    InMemoryAttendanceSource,
    InMemoryHistoryStore,
    InMemoryStudentSource,
    InMemoryTemplateStore,
)
from src.infrastructure.stores.sql import SqlHistoryStore, SqlTemplateStore

__all__ = [
    # Interfaces
    "AttendanceDataSource",
    "HistoryStore",
    "StudentDataSource",
    "TemplateStore",
    # In-memory
    "InMemoryAttendanceSource",
    "InMemoryHistoryStore",
    "InMemoryStudentSource",
    "InMemoryTemplateStore",
    # SQL
    "SqlHistoryStore",
    "SqlTemplateStore",
]
