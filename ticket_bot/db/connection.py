"""Async SQLite connection manager with pooling and schema bootstrap.

Wraps `aiosqlite` connections, creates the ticket schema on first use and
provides a fixed-size connection pool for async database access.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from ticket_bot.config import get_settings

_db_settings = get_settings().db

DATABASE_PATH = _db_settings.path
POOL_SIZE = _db_settings.pool_size
POOL_TIMEOUT = _db_settings.pool_timeout  # seconds
CURRENT_SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)

_pool: asyncio.Queue[aiosqlite.Connection] | None = None
_pool_lock = asyncio.Lock()
_pool_initialized = False

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tickets (
    ticket_id INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id TEXT UNIQUE NOT NULL,
    creator_id TEXT NOT NULL,
    category_key TEXT NOT NULL,
    ticket_number INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'closed')),
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    closed_at DATETIME,
    archived BOOLEAN NOT NULL DEFAULT 0,
    archive_path TEXT,
    archive_format TEXT CHECK (archive_format IN ('json', 'txt', 'html')),
    close_reason TEXT,
    closed_by TEXT,
    CONSTRAINT unique_category_number UNIQUE (category_key, ticket_number)
);

CREATE INDEX IF NOT EXISTS idx_tickets_creator ON tickets(creator_id);
CREATE INDEX IF NOT EXISTS idx_tickets_category ON tickets(category_key);
CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status);
CREATE INDEX IF NOT EXISTS idx_tickets_created_at ON tickets(created_at DESC);

CREATE TABLE IF NOT EXISTS ticket_participants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id INTEGER NOT NULL REFERENCES tickets(ticket_id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    added_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    added_by TEXT NOT NULL,
    CONSTRAINT unique_ticket_participant UNIQUE (ticket_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_participants_user ON ticket_participants(user_id);

CREATE TABLE IF NOT EXISTS ticket_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id INTEGER NOT NULL REFERENCES tickets(ticket_id) ON DELETE CASCADE,
    message_id TEXT NOT NULL,
    author_id TEXT NOT NULL,
    author_username TEXT NOT NULL,
    content TEXT,
    created_at DATETIME NOT NULL,
    edited_at DATETIME,
    attachments TEXT NOT NULL DEFAULT '[]',
    embeds TEXT NOT NULL DEFAULT '[]',
    CONSTRAINT unique_ticket_message UNIQUE (ticket_id, message_id)
);

CREATE INDEX IF NOT EXISTS idx_messages_created ON ticket_messages(created_at);

CREATE TABLE IF NOT EXISTS ticket_panels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id TEXT NOT NULL,
    message_id TEXT UNIQUE NOT NULL,
    panel_config TEXT NOT NULL,
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


async def _open_connection() -> aiosqlite.Connection:
    conn = await aiosqlite.connect(
        DATABASE_PATH,
        timeout=POOL_TIMEOUT,
        cached_statements=128,
    )
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.commit()
    return conn


async def _apply_schema(conn: aiosqlite.Connection) -> None:
    await conn.executescript(SCHEMA_SQL)
    await conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION};")
    await conn.commit()


async def _initialize_database() -> None:
    """Create the schema if the database file is new."""
    try:
        async with aiosqlite.connect(DATABASE_PATH, timeout=POOL_TIMEOUT) as conn:
            await conn.execute("PRAGMA foreign_keys = ON;")
            cursor = await conn.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version == 0:
                logger.info("Applying schema, version %d", CURRENT_SCHEMA_VERSION)
                await _apply_schema(conn)
            elif current_version < CURRENT_SCHEMA_VERSION:
                # Migrations are owned by deployment tooling.
                logger.warning(
                    "Database schema version %d is older than %d",
                    current_version,
                    CURRENT_SCHEMA_VERSION,
                )
            else:
                logger.info("Database schema is up-to-date (version %d)", current_version)
    except Exception as e:
        logger.exception("Failed to initialize database: %s", e)
        raise


async def _initialize_pool() -> None:
    """Create and populate the connection pool."""
    global _pool, _pool_initialized

    # ":memory:" opens a separate empty database per connection, so the pool
    # holds its one connection exactly once. POOL_SIZE does not apply.
    if DATABASE_PATH == ":memory:":
        conn = await _open_connection()
        await _apply_schema(conn)

        q: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=1)
        await q.put(conn)
        _pool = q
        _pool_initialized = True
        if POOL_SIZE > 1:
            logger.info("In-memory database ignores pool size %d, using one connection", POOL_SIZE)
        logger.info("Database connection pool initialized with a single in-memory connection")
        return

    await _initialize_database()

    q = asyncio.Queue(maxsize=POOL_SIZE)
    for i in range(POOL_SIZE):
        try:
            await q.put(await _open_connection())
            logger.debug("Opened connection %d/%d", i + 1, POOL_SIZE)
        except Exception as e:
            logger.exception("Error opening database connection [%d]: %s", i + 1, e)
            raise
    _pool = q
    _pool_initialized = True
    logger.info("Database connection pool initialized with size %d", POOL_SIZE)


@asynccontextmanager
async def get_connection() -> AsyncIterator[aiosqlite.Connection]:
    """
    Acquire a database connection from the pool.

    The connection goes back to the pool on every exit path.

    Usage:
        async with get_connection() as conn:
            await conn.execute(...)
            await conn.commit()
    """
    global _pool_initialized

    if not _pool_initialized:
        async with _pool_lock:
            if not _pool_initialized:
                logger.info("Initializing database connection pool")
                await _initialize_pool()

    pool = _pool
    if pool is None:
        raise RuntimeError("Connection pool is not initialized")
    try:
        conn = await asyncio.wait_for(pool.get(), timeout=POOL_TIMEOUT)
        logger.debug("Acquired database connection from pool")
    except asyncio.TimeoutError:
        logger.error("Timed out waiting for database connection")
        raise RuntimeError("Database connection timeout")

    try:
        await conn.execute("SELECT 1;")
    except Exception as e:
        logger.warning("Database connection is invalid, recreating: %s", e)
        try:
            conn = await _open_connection()
        except Exception:
            await pool.put(conn)
            raise

    start_time = time.monotonic()
    try:
        yield conn
    except Exception as e:
        logger.debug("Database operation error: %s", e)
        raise
    finally:
        elapsed = time.monotonic() - start_time
        logger.debug("Database connection held for %.3f seconds", elapsed)
        pool.put_nowait(conn)
        logger.debug("Returned database connection to pool")


async def close_pool() -> None:
    """Close all connections in the pool and reset its state."""
    global _pool, _pool_initialized

    if _pool is None:
        return

    while not _pool.empty():
        conn = _pool.get_nowait()
        try:
            await conn.close()
        except Exception as exc:  # pragma: no cover - cleanup best effort
            logger.warning("Error closing DB connection: %s", exc)

    _pool = None
    _pool_initialized = False
    logger.info("Database connection pool closed")
