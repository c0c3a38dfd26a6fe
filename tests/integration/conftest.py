# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration test fixtures backed by a temporary SQLite database."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.config import DatabaseSettings
from src.infrastructure.database import build_engine, build_sessionmaker, create_tables


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Provide a SQLite URL in the test's temporary directory."""
    return f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}"


@pytest_asyncio.fixture
async def engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    """Provide an engine with the service tables created."""
    engine = build_engine(DatabaseSettings(url=database_url))
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Provide a sessionmaker bound to the test engine."""
    return build_sessionmaker(engine)
