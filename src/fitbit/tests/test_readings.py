"""Tests for nightly SpO2, breathing-rate and skin-temperature conversion."""

from __future__ import annotations

from datetime import datetime

import pytest

from src.fitbit.base import SampleType
from src.fitbit.segmentation.readings import (
    convert_breathing_rate,
    convert_skin_temperature,
    convert_spo2,
)

NIGHT = datetime(2026, 2, 23)


class TestSpo2:
    def test_daily_summary_object(self) -> None:
        payload = {"dateTime": "2026-02-23", "value": {"avg": 96.5, "min": 94.1, "max": 98.9}}
        samples = convert_spo2(payload)
        assert len(samples) == 1
        assert samples[0].type == SampleType.oxygen_saturation
        assert samples[0].value == 96.5
        assert samples[0].timestamp == NIGHT

    def test_list_of_summaries(self) -> None:
        payload = [
            {"dateTime": "2026-02-22", "value": {"avg": 95.0}},
            {"dateTime": "2026-02-23", "value": {"avg": 97.0}},
        ]
        assert [s.value for s in convert_spo2(payload)] == [95.0, 97.0]

    def test_missing_average_skipped(self) -> None:
        assert convert_spo2({"dateTime": "2026-02-23", "value": {}}) == []
        assert convert_spo2({}) == []
        assert convert_spo2(None) == []


class TestBreathingRate:
    def test_breathing_rate_entries(self) -> None:
        payload = [{"dateTime": "2026-02-23", "value": {"breathingRate": 14.2}}]
        samples = convert_breathing_rate(payload)
        assert [(s.type, s.value, s.timestamp) for s in samples] == [
            (SampleType.respiratory_rate, 14.2, NIGHT),
        ]

    def test_entry_without_date_skipped(self) -> None:
        assert convert_breathing_rate([{"value": {"breathingRate": 14.2}}]) == []


class TestSkinTemperature:
    def test_relative_deviation_added_to_baseline(self) -> None:
        payload = [{"dateTime": "2026-02-23", "value": {"nightlyRelative": -0.4}}]
        samples = convert_skin_temperature(payload)
        assert samples[0].type == SampleType.body_temperature
        assert samples[0].value == pytest.approx(98.2)
        assert samples[0].timestamp == NIGHT

    def test_custom_baseline(self) -> None:
        payload = [{"dateTime": "2026-02-23", "value": {"nightlyRelative": 0.5}}]
        assert convert_skin_temperature(payload, baseline_f=97.0)[0].value == pytest.approx(97.5)

    def test_zero_deviation_skipped(self) -> None:
        payload = [{"dateTime": "2026-02-23", "value": {"nightlyRelative": 0}}]
        assert convert_skin_temperature(payload) == []
