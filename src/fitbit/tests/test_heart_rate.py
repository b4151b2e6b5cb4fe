"""Tests for heart-rate exertion detection and blocking."""

from __future__ import annotations

from src.fitbit.base import SampleType
from src.fitbit.segmentation.heart_rate import block_heart_rate, classify_exertion
from src.fitbit.segmentation.series import parse_minute_series
from src.fitbit.tests.conftest import TEST_DATE, at_minute, minute_dataset


def _blocks(values: list[int], **kwargs) -> list[tuple[int, object]]:
    samples = block_heart_rate(minute_dataset(values), TEST_DATE, **kwargs)
    assert all(s.type == SampleType.heart_rate for s in samples)
    return [(s.value, s.timestamp) for s in samples]


class TestExertionClassification:
    def test_steady_readings_are_not_exertion(self) -> None:
        points = parse_minute_series(minute_dataset([72] * 30), TEST_DATE)
        assert classify_exertion(points) == [False] * 30

    def test_spike_flagged_against_local_baseline(self) -> None:
        points = parse_minute_series(minute_dataset([60] * 40 + [120] * 5 + [60] * 40), TEST_DATE)
        flags = classify_exertion(points)
        assert [i for i, flag in enumerate(flags) if flag] == [40, 41, 42, 43, 44]

    def test_invalid_minutes_never_exertion_and_excluded_from_baseline(self) -> None:
        points = parse_minute_series(minute_dataset([0, 0, 70, 0, 71]), TEST_DATE)
        assert classify_exertion(points) == [False] * 5


class TestHeartRateBlocking:
    def test_steady_hour_yields_two_normal_blocks(self) -> None:
        assert _blocks([72] * 60) == [(72, at_minute(29)), (72, at_minute(59))]

    def test_value_is_rounded_mean(self) -> None:
        assert _blocks([70, 71, 71]) == [(71, at_minute(2))]

    def test_exertion_gets_its_own_short_block(self) -> None:
        values = [60] * 40 + [120] * 5 + [60] * 40
        assert _blocks(values) == [
            (60, at_minute(29)),
            (60, at_minute(39)),   # closed by the flip into exertion
            (120, at_minute(44)),  # five-minute exertion block
            (60, at_minute(74)),
            (60, at_minute(84)),
        ]

    def test_young_block_adopts_new_classification(self) -> None:
        """A lone exertion minute starting a block is absorbed once readings settle."""
        values = [60] * 30 + [120] + [60] * 30
        # The block opened by the 120 reading turns normal before reaching
        # min_block; the final single-reading block is dropped.
        assert _blocks(values) == [(60, at_minute(29)), (62, at_minute(59))]

    def test_long_gap_closes_block(self) -> None:
        values = [70] * 5 + [0] * 5 + [70] * 5
        assert _blocks(values) == [(70, at_minute(4)), (70, at_minute(14))]

    def test_short_gap_is_bridged(self) -> None:
        values = [70] * 5 + [0] * 4 + [74] * 5
        assert _blocks(values) == [(72, at_minute(13))]

    def test_gap_does_not_close_block_below_min_block(self) -> None:
        values = [70] * 2 + [0] * 6 + [74] * 2
        assert _blocks(values) == [(72, at_minute(9))]

    def test_trailing_block_below_min_block_dropped(self) -> None:
        assert _blocks([80, 80]) == []

    def test_young_block_survives_long_gap(self) -> None:
        """Two readings are too few to emit, so the block waits out the gap."""
        values = [70] * 2 + [0] * 10 + [80] * 3
        assert _blocks(values) == [(76, at_minute(14))]

    def test_empty_dataset_yields_nothing(self) -> None:
        assert block_heart_rate([], TEST_DATE) == []
        assert block_heart_rate(None, TEST_DATE) == []
        assert block_heart_rate(minute_dataset([0] * 30), TEST_DATE) == []

    def test_custom_targets(self) -> None:
        assert _blocks([70] * 20, normal_block=10) == [(70, at_minute(9)), (70, at_minute(19))]
