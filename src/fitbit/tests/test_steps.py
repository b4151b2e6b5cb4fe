"""Tests for step blocking."""

from __future__ import annotations

from src.fitbit.base import SampleType
from src.fitbit.segmentation.steps import block_steps
from src.fitbit.tests.conftest import TEST_DATE, at_minute, minute_dataset


class TestStepBlocking:
    def test_walk_split_at_max_block_and_separated_by_idle_gap(self) -> None:
        """60 idle, 20 min of 5, 20 idle, 5 min of 3, 60 idle."""
        dataset = minute_dataset([0] * 60 + [5] * 20 + [0] * 20 + [3] * 5 + [0] * 60)

        samples = block_steps(dataset, TEST_DATE)

        assert [(s.value, s.timestamp) for s in samples] == [
            (75, at_minute(74)),   # first 15 minutes of the walk
            (25, at_minute(79)),   # remaining 5 minutes
            (15, at_minute(104)),  # the separate run of 3s
        ]
        assert all(s.type == SampleType.steps for s in samples)

    def test_total_steps_preserved(self) -> None:
        values = [0, 12, 40, 0, 0, 7, 0] * 20 + [0] * 15 + [90] * 31 + [1, 0] * 12
        samples = block_steps(minute_dataset(values), TEST_DATE)
        assert sum(s.value for s in samples) == sum(values)

    def test_empty_dataset_yields_nothing(self) -> None:
        assert block_steps([], TEST_DATE) == []
        assert block_steps(None, TEST_DATE) == []

    def test_all_zero_dataset_yields_nothing(self) -> None:
        assert block_steps(minute_dataset([0] * 120), TEST_DATE) == []

    def test_short_idle_run_absorbed(self) -> None:
        dataset = minute_dataset([5] * 3 + [0] * 5 + [5] * 3)
        samples = block_steps(dataset, TEST_DATE)
        assert len(samples) == 1
        assert samples[0].value == 30
        assert samples[0].timestamp == at_minute(10)

    def test_nine_idle_minutes_do_not_close_block(self) -> None:
        samples = block_steps(minute_dataset([5] * 2 + [0] * 9 + [5] * 2), TEST_DATE)
        assert [s.value for s in samples] == [20]

    def test_ten_idle_minutes_close_block(self) -> None:
        samples = block_steps(minute_dataset([5] * 2 + [0] * 10 + [5] * 2), TEST_DATE)
        assert [(s.value, s.timestamp) for s in samples] == [
            (10, at_minute(1)),
            (10, at_minute(13)),
        ]

    def test_block_never_spans_more_than_max_block(self) -> None:
        """Idle minutes inside a block still count towards its span."""
        samples = block_steps(minute_dataset([2] * 5 + [0] * 9 + [2] * 5), TEST_DATE)
        assert [(s.value, s.timestamp) for s in samples] == [
            (12, at_minute(14)),
            (8, at_minute(18)),
        ]

    def test_open_block_emitted_at_end_of_series(self) -> None:
        samples = block_steps(minute_dataset([0] * 10 + [4] * 3), TEST_DATE)
        assert [(s.value, s.timestamp) for s in samples] == [(12, at_minute(12))]

    def test_custom_parameters(self) -> None:
        samples = block_steps(minute_dataset([1] * 10), TEST_DATE, max_block=5, gap=3)
        assert [s.value for s in samples] == [5, 5]

    def test_malformed_entries_ignored(self) -> None:
        dataset = [
            {"time": "08:00:00", "value": 10},
            {"time": "not-a-time", "value": 99},
            {"value": 99},
            "garbage",
            {"time": "08:01:00", "value": "n/a"},
            {"time": "08:02:00", "value": 5},
        ]
        samples = block_steps(dataset, TEST_DATE)
        assert [(s.value, s.timestamp) for s in samples] == [(15, at_minute(8 * 60 + 2))]

    def test_unordered_dataset_sorted_by_time(self) -> None:
        dataset = [
            {"time": "00:02:00", "value": 3},
            {"time": "00:00:00", "value": 1},
            {"time": "00:01:00", "value": 2},
        ]
        samples = block_steps(dataset, TEST_DATE)
        assert [(s.value, s.timestamp) for s in samples] == [(6, at_minute(2))]
