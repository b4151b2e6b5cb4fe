"""Deduplication helpers for sample ingestion.

The authoritative dedup mechanism is the ``samples_identity`` UNIQUE
constraint on ``(type, timestamp, start_time, end_time)``; inserts that hit
it are ignored.  ``BatchDedup`` only keeps one batch from sending the same
identity twice.
"""

from __future__ import annotations

import logging

from src.fitbit.base import Sample

logger = logging.getLogger("fitsync.fitbit.sync.dedup")


def sample_key(sample: Sample) -> str:
    """Generate a dedup key matching the samples UNIQUE constraint.

    Args:
        sample: Sample to key.

    Returns:
        Pipe-separated key; absent instants render as empty fields.
    """
    return "|".join(
        "" if part is None else (part.isoformat() if hasattr(part, "isoformat") else str(part))
        for part in sample.identity_key
    )


class BatchDedup:
    """Remembers the identities already sent within one storage batch.

    Usage::

        seen = BatchDedup()
        for sample in batch:
            if not seen.first_seen(sample):
                continue
            # insert the sample
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self.duplicates = 0

    def first_seen(self, sample: Sample) -> bool:
        """Record ``sample`` and report whether its identity is new to this batch."""
        key = sample_key(sample)
        if key in self._keys:
            self.duplicates += 1
            logger.debug("Duplicate identity within batch: %s", key)
            return False
        self._keys.add(key)
        return True


def build_insert_ignore_query(table: str, columns: list[str], conflict_constraint: str) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT ON CONSTRAINT ... DO NOTHING query.

    Writes are idempotent: re-inserting an existing identity is a no-op and
    the command status reports ``INSERT 0 0``.

    Args:
        table:               Target table name.
        columns:             Columns to insert, in parameter order.
        conflict_constraint: Name of the UNIQUE constraint to ignore conflicts on.

    Returns:
        Parameterized SQL string.
    """
    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(f'"{col}"' for col in columns)
    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ON CONSTRAINT {conflict_constraint} DO NOTHING"
    )
