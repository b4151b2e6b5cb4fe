"""Idempotent sample store and append-only sync ledger.

Tables (see ``src/services/database.py``):
    samples   — UNIQUE NULLS NOT DISTINCT (type, timestamp, start_time, end_time)
    sync_log  — one row per pipeline run; never updated

The ledger has no dedicated rate-limit table.  The most recent sync_log row
carrying a ``rate_limit_remaining`` value is the authoritative budget
snapshot, and it is ignored once its recorded reset instant has passed.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime
from typing import Any, Iterable

import asyncpg

from src.fitbit.base import (
    RateLimitStatus,
    Sample,
    SampleType,
    SyncLogEntry,
    SyncStatus,
    utc_now,
)
from src.fitbit.sync.dedup import BatchDedup, build_insert_ignore_query
from src.services.database import get_connection

logger = logging.getLogger("fitsync.fitbit.ledger")

SAMPLE_COLUMNS = ["type", "value", "timestamp", "start_time", "end_time"]

INSERT_SAMPLE_SQL = build_insert_ignore_query("samples", SAMPLE_COLUMNS, "samples_identity")

INSERT_SYNC_LOG_SQL = """
INSERT INTO sync_log (
    data_type, last_sync_time, status,
    rate_limit_remaining, rate_limit_limit, rate_limit_reset_at, error_message
)
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

SELECT_RATE_LIMIT_SQL = """
SELECT rate_limit_remaining, rate_limit_reset_at
FROM sync_log
WHERE rate_limit_remaining IS NOT NULL
ORDER BY id DESC
LIMIT 1
"""

SELECT_LATEST_SYNC_SQL = """
SELECT last_sync_time
FROM sync_log
WHERE data_type = $1 AND status = 'success'
ORDER BY id DESC
LIMIT 1
"""

SELECT_SAMPLES_SINCE_SQL = """
SELECT type, value, "timestamp", start_time, end_time
FROM samples
WHERE ("timestamp" > $1 OR start_time > $1)
  AND ($2::text[] IS NULL OR type = ANY($2::text[]))
ORDER BY COALESCE("timestamp", start_time) ASC, id ASC
"""

SELECT_SAMPLE_TYPES_SQL = "SELECT DISTINCT type FROM samples ORDER BY type"

SELECT_COUNTS_BY_DATE_SQL = """
SELECT type, COUNT(*) AS count
FROM samples
WHERE COALESCE("timestamp", start_time)::date = $1
  AND ($2::text[] IS NULL OR type = ANY($2::text[]))
GROUP BY type
ORDER BY type
"""


def _sample_params(sample: Sample) -> tuple[Any, ...]:
    """Positional parameters for INSERT_SAMPLE_SQL.

    Raises:
        ValueError: If the sample is malformed or its value is not finite.
    """
    sample.validate()
    if isinstance(sample.value, float) and not math.isfinite(sample.value):
        raise ValueError(f"Sample value must be finite, got {sample.value!r}")
    return (
        SampleType(sample.type).value,
        json.dumps(sample.value),
        sample.timestamp,
        sample.start_time,
        sample.end_time,
    )


def _row_to_sample(row: Any) -> Sample:
    value = row["value"]
    if isinstance(value, str):
        value = json.loads(value)
    return Sample(
        type=SampleType(row["type"]),
        value=value,
        timestamp=row["timestamp"],
        start_time=row["start_time"],
        end_time=row["end_time"],
    )


class PersistenceLedger:
    """Sample storage and sync ledger on a Postgres pool."""

    def __init__(self, pool: Any | None = None, default_limit: int = 150) -> None:
        """Initialize the ledger.

        Args:
            pool:          asyncpg pool; defaults to the module-level pool.
            default_limit: Budget reported when no live snapshot exists.
        """
        self._pool = pool
        self._default_limit = default_limit

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    async def store_samples(self, samples: Iterable[Sample]) -> int:
        """Insert samples, ignoring identities that already exist.

        Each row runs in its own savepoint so a row the database rejects is
        logged and skipped without aborting the rest of the batch.

        Returns:
            Number of rows actually inserted.
        """
        batch = list(samples)
        if not batch:
            return 0

        seen = BatchDedup()
        inserted = 0
        skipped = 0

        async with get_connection(self._pool) as conn:
            for sample in batch:
                try:
                    params = _sample_params(sample)
                except (ValueError, TypeError) as exc:
                    logger.warning("Skipping malformed sample %r: %s", sample, exc)
                    skipped += 1
                    continue

                if not seen.first_seen(sample):
                    continue

                try:
                    async with conn.transaction():
                        status = await conn.execute(INSERT_SAMPLE_SQL, *params)
                except (asyncpg.PostgresError, ValueError, TypeError) as exc:
                    logger.warning("Skipping sample rejected by the database %r: %s", sample, exc)
                    skipped += 1
                    continue

                if status.endswith(" 1"):
                    inserted += 1

        logger.info(
            "Stored samples: %d inserted, %d duplicate, %d skipped",
            inserted, len(batch) - inserted - skipped, skipped,
        )
        return inserted

    async def samples_since(
        self, since: datetime, sample_types: list[str] | None = None
    ) -> list[Sample]:
        """Samples whose timestamp (or start_time) is after ``since``, oldest first."""
        async with get_connection(self._pool) as conn:
            rows = await conn.fetch(SELECT_SAMPLES_SINCE_SQL, since, sample_types or None)
        return [_row_to_sample(row) for row in rows]

    async def sample_types(self) -> list[str]:
        async with get_connection(self._pool) as conn:
            rows = await conn.fetch(SELECT_SAMPLE_TYPES_SQL)
        return [row["type"] for row in rows]

    async def sample_counts_by_date(
        self, day: date, sample_types: list[str] | None = None
    ) -> dict[str, int]:
        """Per-type sample counts for one calendar day."""
        async with get_connection(self._pool) as conn:
            rows = await conn.fetch(SELECT_COUNTS_BY_DATE_SQL, day, sample_types or None)
        return {row["type"]: int(row["count"]) for row in rows}

    # ------------------------------------------------------------------
    # Sync ledger
    # ------------------------------------------------------------------

    async def update_sync_log(self, entry: SyncLogEntry) -> None:
        """Append one ledger row."""
        async with get_connection(self._pool) as conn:
            await conn.execute(
                INSERT_SYNC_LOG_SQL,
                entry.data_type,
                entry.last_sync_time,
                SyncStatus(entry.status).value,
                entry.rate_limit_remaining,
                entry.rate_limit_limit,
                entry.rate_limit_reset_at,
                entry.error_message,
            )
        logger.debug("Sync log: %s %s", entry.data_type, SyncStatus(entry.status).value)

    async def rate_limit_status(self, now: datetime | None = None) -> RateLimitStatus:
        """Current rate budget from the latest snapshot row.

        A snapshot whose reset instant has passed describes an expired
        window, so a fresh default budget is returned instead.  A snapshot
        without a reset instant cannot expire and is returned as stored.
        """
        async with get_connection(self._pool) as conn:
            row = await conn.fetchrow(SELECT_RATE_LIMIT_SQL)

        fresh = RateLimitStatus(remaining=self._default_limit, reset_seconds=0)
        if row is None:
            return fresh

        remaining = int(row["rate_limit_remaining"])
        reset_at = row["rate_limit_reset_at"]
        if reset_at is None:
            return RateLimitStatus(remaining=remaining, reset_seconds=0)

        current = now or utc_now()
        if reset_at <= current:
            logger.info(
                "Stored rate-limit snapshot (%s remaining) expired, assuming fresh window",
                row["rate_limit_remaining"],
            )
            return fresh

        return RateLimitStatus(
            remaining=remaining,
            reset_seconds=math.ceil((reset_at - current).total_seconds()),
        )

    async def latest_sync_time(self, data_type: str) -> datetime | None:
        """The watermark: ``last_sync_time`` of the latest success row for ``data_type``."""
        async with get_connection(self._pool) as conn:
            return await conn.fetchval(SELECT_LATEST_SYNC_SQL, data_type)
