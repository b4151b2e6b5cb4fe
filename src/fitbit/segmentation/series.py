"""Parsing of Fitbit intraday datasets into minute points.

Intraday endpoints return ``[{"time": "HH:MM:SS", "value": n}, ...]`` for a
single calendar day.  Segmentation functions work on the parsed points so
they never deal with malformed entries themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time

logger = logging.getLogger("fitsync.fitbit.segmentation")


@dataclass(frozen=True)
class MinutePoint:
    at: datetime
    value: float


def parse_minute_series(dataset: object, day: date) -> list[MinutePoint]:
    """Convert an intraday dataset into ordered minute points.

    Entries with an unparseable ``time`` are dropped.  Entries with an
    unparseable ``value`` are kept as 0 so that consecutive-minute logic
    (gap look-ahead, window partitioning) stays aligned with the clock.

    Args:
        dataset: The ``dataset`` list from an intraday response (may be None).
        day:     Calendar day the dataset belongs to.

    Returns:
        Minute points sorted by time; empty for missing or malformed input.
    """
    if not isinstance(dataset, (list, tuple)):
        return []

    points: list[MinutePoint] = []
    dropped = 0
    for entry in dataset:
        if not isinstance(entry, dict):
            dropped += 1
            continue
        try:
            clock = time.fromisoformat(str(entry["time"]))
        except (KeyError, ValueError):
            dropped += 1
            continue
        try:
            value = float(entry.get("value"))
        except (TypeError, ValueError):
            value = 0.0
        if value != value:  # NaN
            value = 0.0
        points.append(MinutePoint(at=datetime.combine(day, clock), value=value))

    if dropped:
        logger.debug("Dropped %d malformed intraday entries for %s", dropped, day)
    points.sort(key=lambda p: p.at)
    return points


def count_run(points: list[MinutePoint], start: int, limit: int, *, positive: bool = False) -> int:
    """Count consecutive points from ``start`` (at most ``limit``) that are
    non-positive, or positive when ``positive`` is set."""
    count = 0
    for point in points[start:start + limit]:
        if (point.value > 0) != positive:
            break
        count += 1
    return count


def minutes_between(start: datetime, end: datetime) -> int:
    """Inclusive minute span from ``start`` to ``end``."""
    return int((end - start).total_seconds() // 60) + 1
