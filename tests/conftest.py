# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from helpers import MONDAY, TODAY, FakeClock, FakeTransport, absence
from src.domains.attendance import StudentRecord
from src.domains.templates import TemplateManager
from src.infrastructure.stores import (
    InMemoryAttendanceSource,
    InMemoryHistoryStore,
    InMemoryStudentSource,
    InMemoryTemplateStore,
)

# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (SQLite database)"
    )


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock frozen at NOW."""
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    """Provide a recording transport."""
    return FakeTransport()


@pytest.fixture
def student() -> StudentRecord:
    """Provide a student with two guardian phones."""
    return StudentRecord(
        id="s-1",
        first_name="Ana",
        last_name="Pérez",
        guardian_phones=["0424 123 4567", "0414-765-4321"],
    )


@pytest.fixture
def student_source(student: StudentRecord) -> InMemoryStudentSource:
    """Provide two reachable students and one without a valid phone."""
    return InMemoryStudentSource(
        [
            student,
            StudentRecord(
                id="s-2",
                first_name="Luis",
                last_name="Gómez",
                guardian_phones=["04121112233"],
            ),
            StudentRecord(
                id="s-3",
                first_name="Sofía",
                last_name="Rojas",
                guardian_phones=["123"],
            ),
        ]
    )


@pytest.fixture
def attendance_source() -> InMemoryAttendanceSource:
    """Provide attendance with three unexcused absences for s-1 this week."""
    return InMemoryAttendanceSource(
        [
            absence("s-1", MONDAY),
            absence("s-1", MONDAY + timedelta(days=1)),
            absence("s-1", TODAY),
            absence("s-2", MONDAY, justified=True),
        ]
    )


@pytest.fixture
def template_store() -> InMemoryTemplateStore:
    """Provide an empty in-memory template store."""
    return InMemoryTemplateStore()


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    """Provide an empty in-memory history store."""
    return InMemoryHistoryStore()


@pytest_asyncio.fixture
async def template_manager(template_store: InMemoryTemplateStore, clock: FakeClock) -> TemplateManager:
    """Provide a template manager seeded with the default templates."""
    manager = TemplateManager(template_store, clock=clock)
    await manager.initialize_defaults()
    return manager
