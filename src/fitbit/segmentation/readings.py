"""Conversion of Fitbit's daily summary readings.

SpO2, breathing rate and skin temperature are reported once per night
rather than per minute, so each reading maps to a single point sample
stamped at the reading's ``dateTime``.  Readings without a usable value are
skipped.
"""

from __future__ import annotations

from datetime import datetime

from src.fitbit.base import Sample, SampleType, parse_local_datetime, safe_float


def _entries(payload: object) -> list[dict]:
    # The daily endpoints answer with either one object or a list of them.
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return [entry for entry in payload if isinstance(entry, dict)]
    return []


def _reading(entry: dict, key: str) -> tuple[datetime | None, float | None]:
    value = entry.get("value")
    if not isinstance(value, dict):
        return None, None
    return parse_local_datetime(entry.get("dateTime")), safe_float(value.get(key))


def convert_spo2(payload: object) -> list[Sample]:
    """``/spo2/date/{date}.json`` → ``oxygenSaturation`` (nightly average %)."""
    samples: list[Sample] = []
    for entry in _entries(payload):
        at, avg = _reading(entry, "avg")
        if at is None or not avg:
            continue
        samples.append(Sample(type=SampleType.oxygen_saturation, value=avg, timestamp=at))
    return samples


def convert_breathing_rate(payload: object) -> list[Sample]:
    """``br`` entries → ``respiratoryRate`` (breaths per minute)."""
    samples: list[Sample] = []
    for entry in _entries(payload):
        at, rate = _reading(entry, "breathingRate")
        if at is None or not rate:
            continue
        samples.append(Sample(type=SampleType.respiratory_rate, value=rate, timestamp=at))
    return samples


def convert_skin_temperature(payload: object, baseline_f: float = 98.6) -> list[Sample]:
    """``tempSkin`` entries → ``bodyTemperature``.

    Fitbit only reports the nightly deviation from the wearer's personal
    baseline; it is added to ``baseline_f`` to approximate an absolute
    Fahrenheit reading.  A deviation of exactly 0 is indistinguishable from
    a missing reading and is skipped.
    """
    samples: list[Sample] = []
    for entry in _entries(payload):
        at, relative = _reading(entry, "nightlyRelative")
        if at is None or not relative:
            continue
        samples.append(
            Sample(type=SampleType.body_temperature, value=round(baseline_f + relative, 2), timestamp=at)
        )
    return samples
