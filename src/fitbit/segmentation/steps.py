"""Step blocking: coalesce per-minute step counts into activity blocks.

A block accumulates positive-step minutes and closes when:

* it spans ``max_block`` minutes (the next positive minute opens a new block);
* a zero-step minute begins a run of at least ``gap`` zero minutes (the
  block ends at its last positive minute; the idle run emits nothing);
* the day ends.

Shorter idle runs are absorbed into the open block.  Every input step is
counted in exactly one emitted block.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from src.fitbit.base import Sample, SampleType
from src.fitbit.segmentation.series import count_run, minutes_between, parse_minute_series


@dataclass
class _StepBlock:
    start: datetime
    end: datetime
    total: int = 0

    def to_sample(self) -> Sample:
        return Sample(type=SampleType.steps, value=self.total, timestamp=self.end)


def block_steps(
    dataset: object,
    day: date,
    max_block: int = 15,
    gap: int = 10,
) -> list[Sample]:
    """Segment an intraday steps dataset into step-count samples.

    Args:
        dataset:   ``activities-steps-intraday.dataset`` for one day.
        day:       Calendar day of the dataset.
        max_block: Longest span, in minutes, one block may cover.
        gap:       Zero-step run, in minutes, that closes a block.

    Returns:
        One ``steps`` sample per block, timestamped at the block's last
        positive minute.
    """
    points = parse_minute_series(dataset, day)
    samples: list[Sample] = []
    block: _StepBlock | None = None

    for i, point in enumerate(points):
        if point.value > 0:
            if block is not None and minutes_between(block.start, point.at) > max_block:
                samples.append(block.to_sample())
                block = None
            if block is None:
                block = _StepBlock(start=point.at, end=point.at)
            block.end = point.at
            block.total += int(point.value)
            if minutes_between(block.start, block.end) >= max_block:
                samples.append(block.to_sample())
                block = None
        elif block is not None and count_run(points, i, gap) >= gap:
            samples.append(block.to_sample())
            block = None

    if block is not None:
        samples.append(block.to_sample())
    return samples
