"""Fitbit Sync — command-line entry point.

The scheduler (cron or similar) invokes this module; it wires the token
manager, client, ledger and orchestrator together and runs one command.

Run locally:
    python -m src.main init-db
    python -m src.main sync --date 2026-02-22 --types activity sleep
    python -m src.main sync-range --start 2026-02-01 --end 2026-02-07
    python -m src.main status
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from src.config import Settings, get_settings
from src.fitbit.client import RateLimitedClient
from src.fitbit.config_loader import SyncConfig, get_sync_config
from src.fitbit.credentials import PostgresCredentialStore
from src.fitbit.errors import (
    AuthExpired,
    AuthRequired,
    FitbitSyncError,
    RateLimited,
    RateLimitTooLow,
    TokenRefreshFailed,
    ValidationError,
)
from src.fitbit.ledger import PersistenceLedger
from src.fitbit.sync.orchestrator import SyncOrchestrator
from src.fitbit.tokens import TokenManager
from src.services.database import close_pool, ensure_schema, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("fitsync")

# Exit codes, most specific class first
EXIT_CODES: list[tuple[type[FitbitSyncError], int]] = [
    (ValidationError, 2),
    (RateLimitTooLow, 3),
    (RateLimited, 3),
    (AuthRequired, 4),
    (AuthExpired, 4),
    (TokenRefreshFailed, 4),
    (FitbitSyncError, 1),
]


def exit_code_for(exc: FitbitSyncError) -> int:
    for error_type, code in EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return 1


# ---------- Wiring ----------

def build_orchestrator(
    settings: Settings, config: SyncConfig, pool=None
) -> SyncOrchestrator:
    tokens = TokenManager(
        PostgresCredentialStore(pool),
        client_id=settings.fitbit_client_id,
        client_secret=settings.fitbit_client_secret,
        token_url=settings.fitbit_token_url,
        refresh_buffer_seconds=config.tokens.refresh_buffer_seconds,
        default_expires_in=config.tokens.default_expires_in_seconds,
        timeout=settings.http_timeout_seconds,
    )
    client = RateLimitedClient(
        tokens,
        base_url=settings.fitbit_api_base,
        timeout=settings.http_timeout_seconds,
        default_limit=config.rate_limit.default_limit,
        low_remaining_warning=config.rate_limit.low_remaining_warning,
    )
    ledger = PersistenceLedger(pool, default_limit=config.rate_limit.default_limit)
    return SyncOrchestrator(client, ledger, config=config, scopes=settings.fitbit_scopes)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync Fitbit telemetry into the sample ledger.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the credentials, samples and sync_log tables")

    sync = commands.add_parser("sync", help="Sync a single day")
    sync.add_argument("--date", help="Day to sync, YYYY-MM-DD (default: today; yesterday for sleep)")
    sync.add_argument("--types", nargs="+", help="Data types: activity heartrate sleep other")

    sync_range = commands.add_parser("sync-range", help="Sync an inclusive date range (max 30 days)")
    sync_range.add_argument("--start", required=True, help="First day, YYYY-MM-DD")
    sync_range.add_argument("--end", required=True, help="Last day, YYYY-MM-DD")
    sync_range.add_argument("--types", nargs="+", help="Data types: activity heartrate sleep other")

    commands.add_parser("status", help="Show the rate budget and per-type watermarks")
    return parser


# ---------- Commands ----------

async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Starting %s v%s [%s]", settings.app_name, settings.app_version, settings.environment)

    pool = await init_pool(settings)
    try:
        if args.command == "init-db":
            await ensure_schema(pool)
            return 0

        orchestrator = build_orchestrator(settings, get_sync_config(), pool)

        if args.command == "sync":
            results = await orchestrator.sync(args.date, args.types)
            for data_type, count in results.items():
                print(f"{data_type}: {count}")
        elif args.command == "sync-range":
            outcome = await orchestrator.sync_range(args.start, args.end, args.types)
            for day, counts in outcome.results.items():
                print(f"{day}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
            print(f"total: {outcome.total_count} samples over {outcome.days_processed} days")
        elif args.command == "status":
            overview = await orchestrator.status()
            print(
                f"rate limit: {overview.rate_limit.remaining} remaining, "
                f"resets in {overview.rate_limit.reset_seconds}s"
            )
            for data_type, watermark in overview.watermarks.items():
                print(f"{data_type}: {watermark.isoformat() if watermark else 'never'}")
        return 0
    except FitbitSyncError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return exit_code_for(exc)
    finally:
        await close_pool()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
