"""Adaptive active-calorie windows.

Per-minute active calories are the minute's total burn minus the basal
rate.  The day is partitioned into fixed windows; a window whose active
calories vary a lot (population stddev above ``variability_ratio`` times
the mean) is reported as its two halves instead, so bursts keep their
resolution while flat stretches collapse into a single sample.
"""

from __future__ import annotations

import statistics
from datetime import date

from src.fitbit.base import Sample, SampleType
from src.fitbit.segmentation.series import MinutePoint, parse_minute_series


def _active(points: list[MinutePoint], bmr_per_minute: float) -> list[float]:
    return [max(0.0, p.value - bmr_per_minute) for p in points]


def _window_sample(points: list[MinutePoint], active: list[float]) -> Sample | None:
    total = sum(active)
    if not points or total <= 0:
        return None
    return Sample(type=SampleType.active_calories, value=total, timestamp=points[-1].at)


def split_calories(
    dataset: object,
    day: date,
    bmr_per_minute: float,
    window: int = 30,
    variability_ratio: float = 0.2,
) -> list[Sample]:
    """Segment an intraday calories dataset into active-calorie samples.

    Args:
        dataset:           ``activities-calories-intraday.dataset`` for one day.
        day:               Calendar day of the dataset.
        bmr_per_minute:    Basal calories per minute, subtracted from every minute.
        window:            Window length in minutes (split into two equal halves).
        variability_ratio: Split a window when stddev > ratio * mean.

    Returns:
        ``activeCalories`` samples timestamped at the last minute of their
        window or half-window.  Windows with no active calories emit nothing.
    """
    points = parse_minute_series(dataset, day)
    try:
        bmr = max(0.0, float(bmr_per_minute))
    except (TypeError, ValueError):
        bmr = 0.0
    half = window // 2

    samples: list[Sample] = []
    for start in range(0, len(points), window):
        chunk = points[start:start + window]
        active = _active(chunk, bmr)
        mean = statistics.fmean(active)
        stddev = statistics.pstdev(active, mu=mean)

        if stddev > variability_ratio * mean:
            for offset in (0, half):
                sub = chunk[offset:offset + half]
                sample = _window_sample(sub, active[offset:offset + half])
                if sample is not None:
                    samples.append(sample)
        else:
            sample = _window_sample(chunk, active)
            if sample is not None:
                samples.append(sample)
    return samples
