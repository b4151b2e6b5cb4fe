"""Heart-rate blocking with exertion detection.

Pass 1 classifies every valid minute: its local baseline is the mean of the
valid readings within +/- ``window`` minutes, and the minute is "exertion"
when it deviates from that baseline by more than ``deviation`` bpm.

Pass 2 grows blocks of valid minutes.  A block targets ``exertion_block``
minutes while classified as exertion and ``normal_block`` otherwise.  It
closes when its classification flips after reaching ``min_block`` minutes,
or when it reaches its target.  Until ``min_block`` is reached, a block
adopts the classification of each newly added minute instead of closing.

Invalid (zero) minutes never join a block.  A run of ``gap`` or more of them
closes a block that has reached ``min_block``; shorter runs are bridged.
A trailing block shorter than ``min_block`` is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from src.fitbit.base import Sample, SampleType
from src.fitbit.segmentation.series import MinutePoint, count_run, parse_minute_series


@dataclass
class _HeartRateBlock:
    end: datetime
    exertion: bool
    target: int
    readings: list[int] = field(default_factory=list)

    @property
    def minutes(self) -> int:
        return len(self.readings)

    def to_sample(self) -> Sample:
        mean = sum(self.readings) / len(self.readings)
        return Sample(type=SampleType.heart_rate, value=round(mean), timestamp=self.end)


def classify_exertion(
    points: list[MinutePoint], window: int = 10, deviation: float = 15.0
) -> list[bool]:
    """Flag each valid minute whose reading strays from its local baseline.

    Invalid minutes are never exertion.
    """
    flags: list[bool] = []
    for i, point in enumerate(points):
        if point.value <= 0:
            flags.append(False)
            continue
        neighbours = [
            p.value for p in points[max(0, i - window):i + window + 1] if p.value > 0
        ]
        baseline = sum(neighbours) / len(neighbours)
        flags.append(abs(point.value - baseline) > deviation)
    return flags


def block_heart_rate(
    dataset: object,
    day: date,
    window: int = 10,
    deviation: float = 15.0,
    normal_block: int = 30,
    exertion_block: int = 5,
    min_block: int = 3,
    gap: int = 5,
) -> list[Sample]:
    """Segment an intraday heart-rate dataset into averaged blocks.

    Args:
        dataset:        ``activities-heart-intraday.dataset`` for one day.
        day:            Calendar day of the dataset.
        window:         Baseline neighbourhood, in minutes either side.
        deviation:      bpm distance from baseline that marks exertion.
        normal_block:   Target block length outside exertion.
        exertion_block: Target block length during exertion.
        min_block:      Minimum block length before a block may close early.
        gap:            Invalid-minute run that closes a block.

    Returns:
        ``heartRate`` samples holding the rounded mean bpm of each block,
        timestamped at the block's last reading.
    """
    points = parse_minute_series(dataset, day)
    flags = classify_exertion(points, window, deviation)

    samples: list[Sample] = []
    block: _HeartRateBlock | None = None

    for i, point in enumerate(points):
        if point.value <= 0:
            if (
                block is not None
                and block.minutes >= min_block
                and count_run(points, i, gap) >= gap
            ):
                samples.append(block.to_sample())
                block = None
            continue

        reading = int(point.value)
        exertion = flags[i]
        target = exertion_block if exertion else normal_block

        if block is None:
            block = _HeartRateBlock(end=point.at, exertion=exertion, target=target, readings=[reading])
            continue

        flipped = block.exertion != exertion
        min_reached = block.minutes >= min_block

        if (flipped and min_reached) or block.minutes >= block.target:
            samples.append(block.to_sample())
            block = _HeartRateBlock(end=point.at, exertion=exertion, target=target, readings=[reading])
            continue

        block.end = point.at
        block.readings.append(reading)
        if not min_reached:
            block.exertion = exertion
            block.target = target

    if block is not None and block.minutes >= min_block:
        samples.append(block.to_sample())
    return samples
