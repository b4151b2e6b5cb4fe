"""Per-day and per-range sync of Fitbit data into the ledger.

Each data type runs as one fetch → segment → store pipeline:

    activity   — intraday steps + intraday calories (2 requests)
    heartrate  — intraday heart rate (1 request)
    sleep      — sleep log stages (1 request)
    other      — nightly SpO2 / breathing rate / skin temperature (0-3 requests)

Pipelines run strictly one after another because they share one hourly
rate budget; the pre-flight budget check is only meaningful if nothing else
spends from it concurrently within the invocation.  The first failing
pipeline is recorded as an error row and aborts the rest of the invocation.
Samples stored by earlier pipelines are kept.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Iterable

from src.fitbit import endpoints
from src.fitbit.base import (
    DataType,
    RateLimitInfo,
    RateLimitStatus,
    Sample,
    SyncLogEntry,
    SyncStatus,
    parse_day,
    utc_now,
)
from src.fitbit.client import RateLimitedClient
from src.fitbit.config_loader import SyncConfig, get_sync_config
from src.fitbit.errors import RateLimited, RateLimitTooLow, UpstreamRequestFailed, ValidationError
from src.fitbit.ledger import PersistenceLedger
from src.fitbit.segmentation import (
    block_heart_rate,
    block_steps,
    convert_breathing_rate,
    convert_skin_temperature,
    convert_spo2,
    expand_sleep_stages,
    split_calories,
)

logger = logging.getLogger("fitsync.fitbit.sync.orchestrator")

DEFAULT_SCOPES = ("activity", "heartrate", "sleep")

# Data types that only run when the matching OAuth scope was granted
_REQUIRED_SCOPE = {
    DataType.activity: "activity",
    DataType.heartrate: "heartrate",
    DataType.sleep: "sleep",
}

# Ledger data_type for invocation-level aborts that precede any pipeline
PREFLIGHT_LOG_TYPE = "preflight"


@dataclass
class SyncRangeResult:
    """Outcome of a date-range sync.

    Attributes:
        results:        Per-date (ISO string) map of data type → samples generated.
        total_count:    Samples generated across all dates and types.
        days_processed: Number of dates synced.
    """

    results: dict[str, dict[str, int]] = field(default_factory=dict)
    total_count: int = 0
    days_processed: int = 0


@dataclass
class SyncOverview:
    """Current rate budget and per-type watermarks."""

    rate_limit: RateLimitStatus
    watermarks: dict[str, datetime | None]


class SyncOrchestrator:
    """Sequences data-type pipelines under a shared rate budget."""

    def __init__(
        self,
        client: RateLimitedClient,
        ledger: PersistenceLedger,
        config: SyncConfig | None = None,
        scopes: Iterable[str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Fitbit API client.
            ledger: Sample store and sync ledger.
            config: Tuning config; defaults to the global sync config.
            scopes: OAuth scopes granted to the stored credential.
        """
        self._client = client
        self._ledger = ledger
        self._config = config or get_sync_config()
        self._scopes = set(scopes) if scopes is not None else set(DEFAULT_SCOPES)
        self._pipelines: dict[DataType, Callable[[date], Awaitable[list[Sample]]]] = {
            DataType.activity: self._activity_samples,
            DataType.heartrate: self._heart_rate_samples,
            DataType.sleep: self._sleep_samples,
            DataType.other: self._other_samples,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sync(
        self,
        day: date | str | None = None,
        sample_types: Iterable[str] | None = None,
    ) -> dict[str, int]:
        """Sync one calendar day.

        Args:
            day:          Day to sync.  Defaults to today, and to yesterday
                          for sleep (the night that ended this morning).
            sample_types: Subset of data types; defaults to all configured.

        Returns:
            Map of data type → number of samples generated.

        Raises:
            ValidationError: Bad date or unknown data type.
            RateLimitTooLow: Not enough budget to start; no request was made.
            FitbitSyncError: The first pipeline failure, after it was logged.
        """
        target = self._parse_date(day, "date") if day is not None else None
        types = self._select_types(sample_types)
        await self._preflight(self._config.rate_limit.min_remaining_single_day, "single-day sync")

        results = await self._sync_day(target, types)
        logger.info("Sync completed: %s", results)
        return results

    async def sync_range(
        self,
        start: date | str,
        end: date | str,
        sample_types: Iterable[str] | None = None,
    ) -> SyncRangeResult:
        """Sync every day from ``start`` to ``end`` inclusive, one day at a time.

        Raises:
            ValidationError: ``start`` after ``end``, or the span exceeds the
                             configured maximum (30 days).
            RateLimitTooLow: Budget below ``days × requests_per_day``.
            FitbitSyncError: The first pipeline failure; later days are not attempted.
        """
        first = self._parse_date(start, "start")
        last = self._parse_date(end, "end")
        if first > last:
            raise ValidationError("Start date must be before or equal to end date")

        days = (last - first).days + 1
        max_days = self._config.sync.max_range_days
        if days > max_days:
            raise ValidationError(f"Date range too large: {days} days (maximum {max_days})")

        types = self._select_types(sample_types)
        await self._preflight(
            self._config.rate_limit.required_for_days(days), f"{days}-day range sync"
        )

        pause = self._config.sync.inter_day_pause_ms / 1000.0
        result = SyncRangeResult()
        for offset in range(days):
            current = first + timedelta(days=offset)
            if offset and pause:
                await asyncio.sleep(pause)
            logger.info("Syncing %s (%d/%d)", current.isoformat(), offset + 1, days)
            day_results = await self._sync_day(current, types)
            result.results[current.isoformat()] = day_results
            result.total_count += sum(day_results.values())
            result.days_processed += 1

        logger.info(
            "Range sync completed: %d samples across %d days",
            result.total_count, result.days_processed,
        )
        return result

    async def status(self) -> SyncOverview:
        """Current rate budget and the success watermark of every data type."""
        watermarks = {
            data_type.value: await self._ledger.latest_sync_time(data_type.value)
            for data_type in DataType
        }
        return SyncOverview(
            rate_limit=await self._ledger.rate_limit_status(),
            watermarks=watermarks,
        )

    # ------------------------------------------------------------------
    # Invocation plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_date(value: date | str, name: str) -> date:
        parsed = parse_day(value)
        if parsed is None:
            raise ValidationError(f"Invalid {name}: {value!r} (expected YYYY-MM-DD)")
        return parsed

    def _select_types(self, sample_types: Iterable[str] | None) -> list[DataType]:
        if sample_types is None:
            selected = set(self._config.sync.data_types)
        else:
            selected = set()
            for name in sample_types:
                try:
                    selected.add(DataType(name))
                except ValueError:
                    raise ValidationError(
                        f"Unknown data type {name!r}; expected one of "
                        f"{', '.join(t.value for t in DataType)}"
                    ) from None
        return [data_type for data_type in DataType if data_type in selected]

    async def _preflight(self, required: int, operation: str) -> None:
        status = await self._ledger.rate_limit_status()
        logger.info(
            "Pre-flight rate limit check for %s: %d remaining, %d required",
            operation, status.remaining, required,
        )
        if status.remaining >= required:
            return

        error = RateLimitTooLow(status.remaining, required, status.reset_seconds)
        logger.error("Aborting %s: %s", operation, error)
        await self._ledger.update_sync_log(
            SyncLogEntry.build(PREFLIGHT_LOG_TYPE, utc_now(), SyncStatus.error, error_message=str(error))
        )
        raise error

    async def _sync_day(self, day: date | None, types: list[DataType]) -> dict[str, int]:
        results: dict[str, int] = {}
        for data_type in types:
            scope = _REQUIRED_SCOPE.get(data_type)
            if scope is not None and scope not in self._scopes:
                logger.info("Skipping %s: scope %r not granted", data_type.value, scope)
                continue
            target = day or self._default_day(data_type)
            results[data_type.value] = await self._run_pipeline(data_type, target)
        return results

    @staticmethod
    def _default_day(data_type: DataType) -> date:
        today = date.today()
        return today - timedelta(days=1) if data_type is DataType.sleep else today

    async def _run_pipeline(self, data_type: DataType, day: date) -> int:
        started = utc_now()
        try:
            samples = await self._pipelines[data_type](day)
            inserted = await self._ledger.store_samples(samples)
        except Exception as exc:
            logger.error("%s sync for %s failed: %s", data_type.value, day.isoformat(), exc)
            snapshot = None
            if isinstance(exc, RateLimited):
                snapshot = RateLimitInfo(
                    remaining=exc.remaining, reset_in_seconds=exc.reset_seconds, limit=exc.limit
                )
            await self._ledger.update_sync_log(
                SyncLogEntry.build(
                    data_type.value, started, SyncStatus.error, snapshot, error_message=str(exc)
                )
            )
            raise

        await self._ledger.update_sync_log(
            SyncLogEntry.build(data_type.value, started, SyncStatus.success, self._client.last_rate_limit)
        )
        logger.info(
            "%s sync for %s completed: %d samples generated, %d new",
            data_type.value, day.isoformat(), len(samples), inserted,
        )
        return len(samples)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def _activity_samples(self, day: date) -> list[Sample]:
        steps_cfg = self._config.steps
        calories_cfg = self._config.calories

        steps = await self._client.request(endpoints.steps_intraday(day))
        samples = block_steps(
            endpoints.intraday_dataset(steps.data, "steps"),
            day,
            max_block=steps_cfg.max_block_minutes,
            gap=steps_cfg.inactivity_gap_minutes,
        )

        calories = await self._client.request(endpoints.calories_intraday(day))
        samples.extend(
            split_calories(
                endpoints.intraday_dataset(calories.data, "calories"),
                day,
                endpoints.bmr_per_minute(calories.data),
                window=calories_cfg.window_minutes,
                variability_ratio=calories_cfg.variability_ratio,
            )
        )
        return samples

    async def _heart_rate_samples(self, day: date) -> list[Sample]:
        cfg = self._config.heart_rate
        response = await self._client.request(endpoints.heart_intraday(day))
        return block_heart_rate(
            endpoints.intraday_dataset(response.data, "heart"),
            day,
            window=cfg.baseline_window_minutes,
            deviation=cfg.exertion_deviation_bpm,
            normal_block=cfg.normal_block_minutes,
            exertion_block=cfg.exertion_block_minutes,
            min_block=cfg.min_block_minutes,
            gap=cfg.gap_minutes,
        )

    async def _sleep_samples(self, day: date) -> list[Sample]:
        response = await self._client.request(endpoints.sleep_log(day))
        samples: list[Sample] = []
        for stages, short_wakes in endpoints.sleep_levels(response.data):
            samples.extend(expand_sleep_stages(stages, short_wakes))
        return samples

    async def _other_samples(self, day: date) -> list[Sample]:
        baseline = self._config.readings.skin_temperature_baseline_f
        readings = [
            ("oxygen_saturation", endpoints.spo2_summary(day), None, convert_spo2),
            ("respiratory_rate", endpoints.breathing_rate_summary(day), "br", convert_breathing_rate),
            (
                "temperature",
                endpoints.skin_temperature_summary(day),
                "tempSkin",
                lambda payload: convert_skin_temperature(payload, baseline),
            ),
        ]

        samples: list[Sample] = []
        for scope, endpoint, key, convert in readings:
            if scope not in self._scopes:
                continue
            try:
                response = await self._client.request(endpoint)
            except UpstreamRequestFailed as exc:
                # Readings the device never recorded come back as errors
                logger.info("%s not available for %s: %s", scope, day.isoformat(), exc)
                continue
            samples.extend(convert(endpoints.summary_readings(response.data, key)))
        return samples
