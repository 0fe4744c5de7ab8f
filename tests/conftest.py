"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from gradeledger.gradebook import init_gradebook_storage
from gradeledger.ledger import init_ledger_storage

if typ.TYPE_CHECKING:
    from pathlib import Path


async def _init_all_storage(engine: AsyncEngine) -> None:
    """Create ledger and gradebook tables."""
    await init_ledger_storage(engine)
    await init_gradebook_storage(engine)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Return an aiosqlite URL for a throwaway database file."""
    return f"sqlite+aiosqlite:///{tmp_path / 'gradeledger_test.db'}"


async def _setup_sqlite(database_url: str) -> AsyncEngine:
    """Create a SQLite engine and initialise all storage layers.

    ``NullPool`` opens a connection per checkout, so sessions work both in
    async tests and from ``asyncio.run`` in synchronous tests and steps.
    """
    engine = create_async_engine(database_url, poolclass=NullPool)
    try:
        await _init_all_storage(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


@pytest_asyncio.fixture
async def session_factory(
    database_url: str,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = await _setup_sqlite(database_url)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()
