"""Fitbit telemetry sync.

Pulls per-minute Fitbit data, segments it into compact samples, and stores
them idempotently alongside an append-only sync ledger.

Subpackages:
    segmentation/ — Pure step, calorie, heart-rate, sleep and nightly-reading segmentation
    sync/         — Orchestrator and deduplication helpers

Core modules:
    base          — Canonical data models (Sample, Credential, SyncLogEntry, ...)
    errors        — Exception taxonomy
    tokens        — TokenManager and the CredentialStore contract
    credentials   — Postgres CredentialStore
    client        — RateLimitedClient for the Fitbit Web API
    ledger        — PersistenceLedger (samples + sync_log)
    config_loader — Load/validate/hot-reload sync_config.yaml
"""

from src.fitbit.base import (
    Credential,
    DataType,
    RateLimitInfo,
    RateLimitStatus,
    Sample,
    SampleType,
    SyncLogEntry,
    SyncStatus,
)
from src.fitbit.config_loader import SyncConfig, get_sync_config

__all__ = [
    "Credential",
    "DataType",
    "RateLimitInfo",
    "RateLimitStatus",
    "Sample",
    "SampleType",
    "SyncLogEntry",
    "SyncStatus",
    "SyncConfig",
    "get_sync_config",
]
