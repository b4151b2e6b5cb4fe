"""Sleep stage expansion.

Each stage interval becomes one ``sleepAnalysis`` sample stamped at the
interval's end.  Short wake intervals are overlaid as extra ``awake``
samples; the stage they interrupt is still reported.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from src.fitbit.base import Sample, SampleType, parse_local_datetime, safe_float

logger = logging.getLogger("fitsync.fitbit.segmentation.sleep")

AWAKE = "awake"
_WAKE_LEVEL = "wake"


def _interval_end(interval: object) -> tuple[str | None, datetime | None]:
    """Return (level, end instant) for a stage interval, or (None, None).

    Accepts Fitbit's ``{level, dateTime, seconds}`` as well as
    ``{level, start, duration}``.
    """
    if not isinstance(interval, dict):
        return None, None
    start = interval.get("dateTime", interval.get("start"))
    if isinstance(start, str):
        start = parse_local_datetime(start)
    if not isinstance(start, datetime):
        return None, None
    seconds = safe_float(interval.get("seconds", interval.get("duration")))
    if seconds is None or seconds < 0:
        return None, None
    level = interval.get("level")
    return (str(level) if level is not None else None), start + timedelta(seconds=seconds)


def expand_sleep_stages(stage_intervals: object, wake_intervals: object = None) -> list[Sample]:
    """Turn sleep stage and short-wake intervals into samples.

    Args:
        stage_intervals: ``levels.data`` entries of a sleep log.
        wake_intervals:  ``levels.shortData`` entries of a sleep log.  Entries
                         whose level is present and not ``wake`` are ignored.

    Returns:
        Stage samples in input order, followed by the wake overlays.
    """
    samples: list[Sample] = []

    for interval in stage_intervals or []:
        level, end = _interval_end(interval)
        if level is None or end is None:
            logger.debug("Skipping malformed sleep stage: %r", interval)
            continue
        samples.append(Sample(type=SampleType.sleep_analysis, value=level, timestamp=end))

    for interval in wake_intervals or []:
        level, end = _interval_end(interval)
        if end is None or (level is not None and level != _WAKE_LEVEL):
            continue
        samples.append(Sample(type=SampleType.sleep_analysis, value=AWAKE, timestamp=end))

    return samples
