"""
This file contains shared fixtures for the test suite.
"""

import os
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("TEST_MODE", "1")
os.environ.setdefault("PYTHONIOENCODING", "utf-8")

from ticket_bot.db import connection  # noqa: E402
from ticket_bot.db.store import POSTGRES, QueryResult  # noqa: E402


class FakeStore:
    """Store double recording statements; ``execute`` is an AsyncMock."""

    def __init__(self, dialect=POSTGRES, result=None):
        self.dialect = dialect
        self.execute = AsyncMock(return_value=result if result is not None else QueryResult())
        self.events = []

    @asynccontextmanager
    async def transaction(self):
        session = FakeStore(self.dialect)
        session.execute = self.execute
        session.events = self.events
        self.events.append("begin")
        try:
            yield session
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


@pytest.fixture
def fake_store():
    """A PostgreSQL-dialect store double returning an empty result by default."""
    return FakeStore()


@pytest.fixture
def make_result():
    def _make(rows=None, rowcount=None):
        rows = list(rows or [])
        return QueryResult(rows=rows, rowcount=len(rows) if rowcount is None else rowcount)

    return _make


@pytest_asyncio.fixture
async def sqlite_db(tmp_path):
    """Point the connection pool at a fresh database file for one test."""
    await connection.close_pool()
    db_file = tmp_path / "tickets.db"
    with patch.object(connection, "DATABASE_PATH", str(db_file)), patch.object(
        connection, "POOL_SIZE", 2
    ):
        yield db_file
        await connection.close_pool()
