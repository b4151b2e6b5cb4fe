"""Fitbit Web API endpoint paths and response payload extraction.

Endpoints used:
    /1/user/-/activities/steps/date/{date}/1d/1min.json     — Intraday steps
    /1/user/-/activities/calories/date/{date}/1d/1min.json  — Intraday calories + daily total
    /1/user/-/activities/heart/date/{date}/1d/1min.json     — Intraday heart rate
    /1.2/user/-/sleep/date/{date}.json                      — Sleep logs with stage levels
    /1/user/-/spo2/date/{date}.json                         — Nightly SpO2 summary
    /1/user/-/br/date/{date}.json                           — Nightly breathing rate
    /1/user/-/temp/skin/date/{date}.json                    — Nightly skin temperature deviation

Extraction helpers never raise: a missing or oddly shaped document yields an
empty result, which the segmentation layer turns into zero samples.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from src.fitbit.base import safe_float

_MINUTES_PER_DAY = 24 * 60


def steps_intraday(day: date) -> str:
    return f"/1/user/-/activities/steps/date/{day.isoformat()}/1d/1min.json"


def calories_intraday(day: date) -> str:
    return f"/1/user/-/activities/calories/date/{day.isoformat()}/1d/1min.json"


def heart_intraday(day: date) -> str:
    return f"/1/user/-/activities/heart/date/{day.isoformat()}/1d/1min.json"


def sleep_log(day: date) -> str:
    return f"/1.2/user/-/sleep/date/{day.isoformat()}.json"


def spo2_summary(day: date) -> str:
    return f"/1/user/-/spo2/date/{day.isoformat()}.json"


def breathing_rate_summary(day: date) -> str:
    return f"/1/user/-/br/date/{day.isoformat()}.json"


def skin_temperature_summary(day: date) -> str:
    return f"/1/user/-/temp/skin/date/{day.isoformat()}.json"


# ---------------------------------------------------------------------------
# Payload extraction
# ---------------------------------------------------------------------------


def _member(data: object, key: str) -> Any:
    return data.get(key) if isinstance(data, dict) else None


def summary_readings(data: object, key: str | None = None) -> object:
    """The readings of a nightly summary document.

    Some summaries wrap their entries under ``key`` (``br``, ``tempSkin``);
    SpO2 answers with the bare object or list, so ``key=None`` returns the
    body itself.
    """
    return data if key is None else _member(data, key)


def intraday_dataset(data: object, resource: str) -> list:
    """Return ``data["activities-<resource>-intraday"]["dataset"]`` or []."""
    intraday = _member(data, f"activities-{resource}-intraday")
    if not isinstance(intraday, dict):
        return []
    dataset = intraday.get("dataset")
    return dataset if isinstance(dataset, list) else []


def bmr_per_minute(data: object) -> float:
    """Basal calories per minute from the daily ``activities-calories`` total.

    The day's total burn spread evenly over 1440 minutes.  Returns 0 when
    the summary is missing, so every calorie counts as active.
    """
    summary = _member(data, "activities-calories")
    if not isinstance(summary, list) or not summary or not isinstance(summary[0], dict):
        return 0.0
    daily = safe_float(summary[0].get("value"))
    if daily is None or daily < 0:
        return 0.0
    return daily / _MINUTES_PER_DAY


def sleep_levels(data: object) -> list[tuple[list, list]]:
    """Return ``(levels.data, levels.shortData)`` for each sleep log that has stages."""
    logs = _member(data, "sleep")
    if not isinstance(logs, list):
        return []
    result: list[tuple[list, list]] = []
    for log in logs:
        levels = log.get("levels") if isinstance(log, dict) else None
        if not isinstance(levels, dict) or not isinstance(levels.get("data"), list):
            continue
        short = levels.get("shortData")
        result.append((levels["data"], short if isinstance(short, list) else []))
    return result
