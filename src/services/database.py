"""Postgres access for the sync ledger.

Uses ``asyncpg`` directly.  Every unit of work acquires a pooled connection
and opens a transaction for its whole scope; the connection is released and
the transaction committed (or rolled back on error) when the ``async with``
block exits.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings, get_settings

logger = logging.getLogger("fitsync.db")

# Module-level connection pool, initialized once at startup
_pool: asyncpg.Pool | None = None


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS credentials (
    id            BIGSERIAL PRIMARY KEY,
    access_token  TEXT NOT NULL,
    refresh_token TEXT NOT NULL,
    expires_at    TIMESTAMPTZ NOT NULL,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS samples (
    id          BIGSERIAL PRIMARY KEY,
    type        TEXT NOT NULL,
    value       JSONB NOT NULL,
    "timestamp" TIMESTAMP,
    start_time  TIMESTAMP,
    end_time    TIMESTAMP,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT samples_identity
        UNIQUE NULLS NOT DISTINCT (type, "timestamp", start_time, end_time)
);

CREATE TABLE IF NOT EXISTS sync_log (
    id                   BIGSERIAL PRIMARY KEY,
    data_type            TEXT NOT NULL,
    last_sync_time       TIMESTAMPTZ NOT NULL,
    status               TEXT NOT NULL CHECK (status IN ('success', 'error')),
    rate_limit_remaining INTEGER,
    rate_limit_limit     INTEGER,
    rate_limit_reset_at  TIMESTAMPTZ,
    error_message        TEXT,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_samples_timestamp ON samples ("timestamp");
CREATE INDEX IF NOT EXISTS idx_samples_start_time ON samples (start_time);
CREATE INDEX IF NOT EXISTS idx_samples_type ON samples (type);
CREATE INDEX IF NOT EXISTS idx_sync_log_data_type ON sync_log (data_type, status);
"""


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=s.db_command_timeout,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.db_pool_min_size,
        s.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection(
    pool: Any | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection and hold a transaction open for the block.

    Usage::

        async with get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM sync_log WHERE data_type = $1", "sleep")

    Args:
        pool: Pool to acquire from.  Defaults to the module-level pool.
    """
    source = pool if pool is not None else get_pool()
    async with source.acquire() as conn:
        async with conn.transaction():
            yield conn


async def ensure_schema(pool: Any | None = None) -> None:
    """Create the credentials, samples, and sync_log tables if missing."""
    async with get_connection(pool) as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Database schema ensured")
