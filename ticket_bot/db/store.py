"""Store abstraction consumed by the access layer.

A store executes positionally-parameterized statements and hands out
dedicated transactional sessions. :class:`SqliteStore` is the implementation
backed by the pooled aiosqlite connections of :mod:`ticket_bot.db.connection`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, AsyncIterator, Dict, List, Protocol, Sequence

import aiosqlite

from . import connection

__all__ = [
    "Dialect",
    "POSTGRES",
    "SQLITE",
    "QueryResult",
    "Store",
    "SqliteStore",
    "SqliteSession",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dialect:
    """Statement-text differences between stores."""

    name: str
    param_prefix: str
    supports_truncate: bool
    offset_requires_limit: bool = False

    def placeholder(self, index: int) -> str:
        """Return the text of positional parameter *index* (1-based)."""
        return f"{self.param_prefix}{index}"


POSTGRES = Dialect(name="postgresql", param_prefix="$", supports_truncate=True)
# SQLite numbered parameters (?NNN) bind positionally like PostgreSQL's $n.
SQLITE = Dialect(
    name="sqlite", param_prefix="?", supports_truncate=False, offset_requires_limit=True
)


@dataclass(frozen=True)
class QueryResult:
    """Rows returned by a statement plus the number of affected rows."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def scalar(self) -> Any:
        """Return the first column of the first row, or ``None``."""
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()), None)


class Store(Protocol):
    dialect: Dialect

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        ...

    def transaction(self) -> AsyncContextManager["Store"]:
        ...


async def _run(conn: aiosqlite.Connection, statement: str, params: Sequence[Any]) -> QueryResult:
    cursor = await conn.execute(statement, tuple(params))
    try:
        rows = [dict(row) for row in await cursor.fetchall()]
        rowcount = cursor.rowcount
    finally:
        await cursor.close()
    # sqlite3 reports -1 for statements that do not modify rows.
    if rowcount < 0:
        rowcount = len(rows)
    return QueryResult(rows=rows, rowcount=rowcount)


class SqliteSession:
    """A connection held for the lifetime of one transaction."""

    dialect = SQLITE

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        return await _run(self._conn, statement, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqliteSession"]:
        # Already inside a transaction: join it.
        yield self


class SqliteStore:
    """Executes each statement on a pooled connection and commits it."""

    dialect = SQLITE

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        async with connection.get_connection() as conn:
            try:
                result = await _run(conn, statement, params)
                if conn.in_transaction:
                    await conn.commit()
            except Exception:
                if conn.in_transaction:
                    await conn.rollback()
                raise
            return result

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqliteSession]:
        """Hold one pooled connection, commit on success, roll back on failure."""
        async with connection.get_connection() as conn:
            # Write lock is held from BEGIN on.
            await conn.execute("BEGIN IMMEDIATE")
            logger.debug("Transaction started")
            try:
                yield SqliteSession(conn)
            except BaseException:
                await conn.rollback()
                logger.debug("Transaction rolled back")
                raise
            await conn.commit()
            logger.debug("Transaction committed")
