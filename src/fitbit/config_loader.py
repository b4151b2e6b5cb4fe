"""Load, validate, and hot-reload the sync tuning configuration.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk after an edit, no restart required.

Usage::

    from src.fitbit.config_loader import get_sync_config

    config = get_sync_config()
    config.steps.max_block_minutes        # 15
    config.rate_limit.min_remaining_single_day  # 10
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.fitbit.base import DataType

logger = logging.getLogger("fitsync.fitbit.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class StepBlockingConfig:
    max_block_minutes: int = 15
    inactivity_gap_minutes: int = 10


@dataclass
class CalorieSplitConfig:
    window_minutes: int = 30
    variability_ratio: float = 0.2


@dataclass
class HeartRateBlockingConfig:
    """Heart-rate exertion detection and block sizing."""

    baseline_window_minutes: int = 10
    exertion_deviation_bpm: float = 15.0
    normal_block_minutes: int = 30
    exertion_block_minutes: int = 5
    min_block_minutes: int = 3
    gap_minutes: int = 5


@dataclass
class RateLimitConfig:
    """Pre-flight rate budget settings."""

    default_limit: int = 150
    min_remaining_single_day: int = 10
    requests_per_day: int = 4
    low_remaining_warning: int = 20

    def required_for_days(self, days: int) -> int:
        return days * self.requests_per_day


@dataclass
class TokenConfig:
    refresh_buffer_seconds: int = 3600
    default_expires_in_seconds: int = 28800


@dataclass
class SyncRunConfig:
    max_range_days: int = 30
    inter_day_pause_ms: int = 100
    data_types: list[DataType] = field(default_factory=lambda: list(DataType))


@dataclass
class ReadingsConfig:
    skin_temperature_baseline_f: float = 98.6


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    This is the single in-memory representation of sync_config.yaml.
    Segmentation, the client, and the orchestrator all read from it.
    """

    version: str
    steps: StepBlockingConfig
    calories: CalorieSplitConfig
    heart_rate: HeartRateBlockingConfig
    rate_limit: RateLimitConfig
    tokens: TokenConfig
    sync: SyncRunConfig
    readings: ReadingsConfig


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Missing keys fall back to the dataclass defaults.  Non-numeric or
    non-positive values are collected and reported together.

    Raises:
        ConfigValidationError: If any value is invalid.
    """
    errors: list[str] = []

    def _section(d: dict, key: str, path: str) -> dict:
        value = d.get(key) or {}
        if not isinstance(value, dict):
            errors.append(f"'{path}' must be a mapping")
            return {}
        return value

    def _number(d: dict, key: str, path: str, default: float, cast: type = int) -> float:
        if key not in d:
            return default
        try:
            value = cast(d[key])
        except (TypeError, ValueError):
            errors.append(f"{path}.{key} must be a number, got {d[key]!r}")
            return default
        if value <= 0:
            errors.append(f"{path}.{key} must be positive, got {value}")
        return value

    seg = _section(raw, "segmentation", "segmentation")

    st_raw = _section(seg, "steps", "segmentation.steps")
    st_def = StepBlockingConfig()
    steps = StepBlockingConfig(
        max_block_minutes=_number(st_raw, "max_block_minutes", "segmentation.steps", st_def.max_block_minutes),
        inactivity_gap_minutes=_number(st_raw, "inactivity_gap_minutes", "segmentation.steps", st_def.inactivity_gap_minutes),
    )

    cal_raw = _section(seg, "calories", "segmentation.calories")
    cal_def = CalorieSplitConfig()
    calories = CalorieSplitConfig(
        window_minutes=_number(cal_raw, "window_minutes", "segmentation.calories", cal_def.window_minutes),
        variability_ratio=_number(cal_raw, "variability_ratio", "segmentation.calories", cal_def.variability_ratio, float),
    )
    if calories.window_minutes % 2:
        errors.append(
            f"segmentation.calories.window_minutes must be even, got {calories.window_minutes}"
        )

    hr_raw = _section(seg, "heart_rate", "segmentation.heart_rate")
    hr_def = HeartRateBlockingConfig()
    p = "segmentation.heart_rate"
    heart_rate = HeartRateBlockingConfig(
        baseline_window_minutes=_number(hr_raw, "baseline_window_minutes", p, hr_def.baseline_window_minutes),
        exertion_deviation_bpm=_number(hr_raw, "exertion_deviation_bpm", p, hr_def.exertion_deviation_bpm, float),
        normal_block_minutes=_number(hr_raw, "normal_block_minutes", p, hr_def.normal_block_minutes),
        exertion_block_minutes=_number(hr_raw, "exertion_block_minutes", p, hr_def.exertion_block_minutes),
        min_block_minutes=_number(hr_raw, "min_block_minutes", p, hr_def.min_block_minutes),
        gap_minutes=_number(hr_raw, "gap_minutes", p, hr_def.gap_minutes),
    )
    if heart_rate.min_block_minutes > heart_rate.exertion_block_minutes:
        errors.append("segmentation.heart_rate.min_block_minutes must not exceed exertion_block_minutes")

    rl_raw = _section(raw, "rate_limit", "rate_limit")
    rl_def = RateLimitConfig()
    rate_limit = RateLimitConfig(
        default_limit=_number(rl_raw, "default_limit", "rate_limit", rl_def.default_limit),
        min_remaining_single_day=_number(rl_raw, "min_remaining_single_day", "rate_limit", rl_def.min_remaining_single_day),
        requests_per_day=_number(rl_raw, "requests_per_day", "rate_limit", rl_def.requests_per_day),
        low_remaining_warning=_number(rl_raw, "low_remaining_warning", "rate_limit", rl_def.low_remaining_warning),
    )

    tk_raw = _section(raw, "tokens", "tokens")
    tk_def = TokenConfig()
    tokens = TokenConfig(
        refresh_buffer_seconds=_number(tk_raw, "refresh_buffer_seconds", "tokens", tk_def.refresh_buffer_seconds),
        default_expires_in_seconds=_number(tk_raw, "default_expires_in_seconds", "tokens", tk_def.default_expires_in_seconds),
    )

    sy_raw = _section(raw, "sync", "sync")
    sy_def = SyncRunConfig()
    data_types: list[DataType] = []
    for name in sy_raw.get("data_types", [t.value for t in sy_def.data_types]) or []:
        try:
            data_types.append(DataType(name))
        except ValueError:
            errors.append(f"sync.data_types contains unknown data type {name!r}")
    pause_ms = sy_raw.get("inter_day_pause_ms", sy_def.inter_day_pause_ms)
    try:
        pause_ms = int(pause_ms)
        if pause_ms < 0:
            errors.append(f"sync.inter_day_pause_ms must be >= 0, got {pause_ms}")
    except (TypeError, ValueError):
        errors.append(f"sync.inter_day_pause_ms must be a number, got {pause_ms!r}")
        pause_ms = sy_def.inter_day_pause_ms
    sync = SyncRunConfig(
        max_range_days=_number(sy_raw, "max_range_days", "sync", sy_def.max_range_days),
        inter_day_pause_ms=pause_ms,
        data_types=data_types,
    )

    rd_raw = _section(raw, "readings", "readings")
    readings = ReadingsConfig(
        skin_temperature_baseline_f=_number(
            rd_raw, "skin_temperature_baseline_f", "readings",
            ReadingsConfig().skin_temperature_baseline_f, float,
        ),
    )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=str(raw.get("version", "1.0")),
        steps=steps,
        calories=calories,
        heart_rate=heart_rate,
        rate_limit=rate_limit,
        tokens=tokens,
        sync=sync,
        readings=readings,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the global SyncConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
