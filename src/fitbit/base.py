"""Canonical data models for the Fitbit telemetry sync.

Segmentation functions emit ``Sample`` records, the ledger persists them,
and the orchestrator records one ``SyncLogEntry`` per data-type pipeline
run.  These types are shared by every layer of the sync.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Union

logger = logging.getLogger("fitsync.fitbit")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_next_hour(now: datetime | None = None) -> int:
    """Seconds from ``now`` to the next top of the hour, when Fitbit windows reset."""
    current = now or utc_now()
    next_hour = current.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return math.ceil((next_hour - current).total_seconds())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SampleType(str, Enum):
    """Sample kinds written to the ledger."""

    steps = "steps"
    active_calories = "activeCalories"
    heart_rate = "heartRate"
    sleep_analysis = "sleepAnalysis"
    oxygen_saturation = "oxygenSaturation"
    respiratory_rate = "respiratoryRate"
    body_temperature = "bodyTemperature"


class DataType(str, Enum):
    """Per-invocation pipelines, run in declaration order."""

    activity = "activity"
    heartrate = "heartrate"
    sleep = "sleep"
    other = "other"


class SyncStatus(str, Enum):
    success = "success"
    error = "error"


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------

SampleValue = Union[int, float, str]


@dataclass(frozen=True)
class Sample:
    """One persisted telemetry event.

    Exactly one of ``timestamp`` (point-in-time samples) or ``start_time``
    (interval samples, optionally with ``end_time``) is populated.

    Attributes:
        type:       Sample kind.
        value:      Numeric reading or, for sleep, a stage label.
        timestamp:  Instant of a point-in-time sample.
        start_time: Start of an interval sample.
        end_time:   End of an interval sample.
    """

    type: SampleType
    value: SampleValue
    timestamp: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def identity_key(self) -> tuple[str, datetime | None, datetime | None, datetime | None]:
        """The uniqueness tuple the ledger deduplicates on."""
        return (SampleType(self.type).value, self.timestamp, self.start_time, self.end_time)

    def validate(self) -> None:
        """Raise ValueError if the sample cannot be stored."""
        try:
            SampleType(self.type)
        except ValueError as exc:
            raise ValueError(f"Unknown sample type {self.type!r}") from exc
        if self.value is None or isinstance(self.value, bool):
            raise ValueError(f"Sample value must be a number or label, got {self.value!r}")
        if (self.timestamp is None) == (self.start_time is None):
            raise ValueError("Sample needs exactly one of timestamp or start_time")
        if self.end_time is not None and self.start_time is None:
            raise ValueError("end_time requires start_time")


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass
class Credential:
    """The single live OAuth credential pair.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Long-lived token used to obtain a new access_token.
        expires_at:    UTC datetime when the access_token expires.
    """

    access_token: str
    refresh_token: str
    expires_at: datetime

    def seconds_until_expiry(self, now: datetime | None = None) -> float:
        current = now or utc_now()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (expires_at - current).total_seconds()


# ---------------------------------------------------------------------------
# Rate limit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate-limit metadata read from one API response.

    Attributes:
        remaining:        Requests left in the current hourly window (None if not reported).
        reset_in_seconds: Seconds until the window resets.
        limit:            Window size.
        observed_at:      When the response was received.
    """

    remaining: int | None
    reset_in_seconds: int
    limit: int
    observed_at: datetime = field(default_factory=utc_now)

    @property
    def used(self) -> int | None:
        if self.remaining is None:
            return None
        return self.limit - self.remaining

    @property
    def reset_at(self) -> datetime:
        return self.observed_at + timedelta(seconds=self.reset_in_seconds)

    @property
    def has_snapshot(self) -> bool:
        return self.remaining is not None


@dataclass(frozen=True)
class RateLimitStatus:
    """Rate budget as seen by the ledger before an invocation.

    Attributes:
        remaining:     Requests left in the current window.
        reset_seconds: Seconds until the window resets (0 when unknown or fresh).
    """

    remaining: int
    reset_seconds: int = 0


@dataclass
class ApiResponse:
    """Parsed JSON body (object or list) plus the rate-limit snapshot of the response."""

    data: dict[str, Any] | list[Any]
    rate_limit: RateLimitInfo


# ---------------------------------------------------------------------------
# Sync ledger
# ---------------------------------------------------------------------------


@dataclass
class SyncLogEntry:
    """One append-only sync ledger row.

    Attributes:
        data_type:            Pipeline name ('activity', 'heartrate', 'sleep', 'other').
        last_sync_time:       When the pipeline run started.
        status:               'success' or 'error'.
        rate_limit_remaining: Remaining budget at the end of the run, if known.
        rate_limit_limit:     Window size, if known.
        rate_limit_reset_at:  Absolute instant the window resets, if known.
        error_message:        Human-readable failure reason for error rows.
    """

    data_type: str
    last_sync_time: datetime
    status: SyncStatus
    rate_limit_remaining: int | None = None
    rate_limit_limit: int | None = None
    rate_limit_reset_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def build(
        cls,
        data_type: str,
        last_sync_time: datetime,
        status: SyncStatus,
        rate_limit: RateLimitInfo | None = None,
        error_message: str | None = None,
    ) -> "SyncLogEntry":
        entry = cls(
            data_type=data_type,
            last_sync_time=last_sync_time,
            status=status,
            error_message=error_message,
        )
        if rate_limit is not None and rate_limit.has_snapshot:
            entry.rate_limit_remaining = rate_limit.remaining
            entry.rate_limit_limit = rate_limit.limit
            entry.rate_limit_reset_at = rate_limit.reset_at
        return entry


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def safe_int(value: object) -> int | None:
    """Safely coerce a value to int, returning None on failure."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def safe_float(value: object) -> float | None:
    """Safely coerce a value to float, returning None on failure."""
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_local_datetime(value: str | None) -> datetime | None:
    """Parse a Fitbit local ISO-8601 datetime (e.g. '2026-02-22T23:30:00.000').

    Fitbit reports sleep and daily readings in the user's local wall clock,
    without an offset.  Returns None if the value is missing or unparseable.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        logger.warning("Could not parse datetime string: %r", value)
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_day(value: str | date | None) -> date | None:
    """Parse a calendar day given as 'YYYY-MM-DD' or a date."""
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value[:10])
    except (ValueError, TypeError):
        logger.warning("Could not parse date string: %r", value)
        return None
