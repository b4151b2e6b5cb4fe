"""Shared fixtures, fakes and mock API responses for Fitbit sync tests."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import asyncpg
import httpx
import pytest

from src.fitbit.base import Credential, utc_now
from src.fitbit.client import RateLimitedClient
from src.fitbit.config_loader import SyncConfig, load_sync_config
from src.fitbit.credentials import (
    DELETE_CREDENTIALS_SQL,
    INSERT_CREDENTIAL_SQL,
    SELECT_CREDENTIAL_SQL,
)
from src.fitbit.ledger import (
    INSERT_SAMPLE_SQL,
    INSERT_SYNC_LOG_SQL,
    SELECT_COUNTS_BY_DATE_SQL,
    SELECT_LATEST_SYNC_SQL,
    SELECT_RATE_LIMIT_SQL,
    SELECT_SAMPLE_TYPES_SQL,
    SELECT_SAMPLES_SINCE_SQL,
    PersistenceLedger,
)
from src.fitbit.tokens import TokenManager
from src.services.database import SCHEMA_SQL

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_DATE = date(2026, 2, 23)

API_BASE = "https://api.fitbit.com"
TOKEN_URL = "https://api.fitbit.com/oauth2/token"

RATE_LIMIT_HEADERS = {
    "fitbit-rate-limit-limit": "150",
    "fitbit-rate-limit-remaining": "120",
    "fitbit-rate-limit-reset": "1800",
}


def minute_dataset(values: list[float], start_minute: int = 0) -> list[dict]:
    """Build an intraday ``dataset`` with one entry per minute from ``start_minute``."""
    return [
        {"time": f"{(start_minute + i) // 60:02d}:{(start_minute + i) % 60:02d}:00", "value": v}
        for i, v in enumerate(values)
    ]


def at_minute(minute: int, day: date = TEST_DATE) -> datetime:
    return datetime.combine(day, datetime.min.time()) + timedelta(minutes=minute)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """The bundled sync config, without the inter-day pause."""
    config = load_sync_config()
    config.sync.inter_day_pause_ms = 0
    return config


# ---------------------------------------------------------------------------
# JSON fixture loaders
# ---------------------------------------------------------------------------


@pytest.fixture
def sleep_log_raw() -> dict:
    return json.loads((FIXTURES_DIR / "sleep_log.json").read_text())


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class InMemoryCredentialStore:
    """CredentialStore holding the pair in memory."""

    def __init__(self, credential: Credential | None = None) -> None:
        self.credential = credential
        self.stored: list[tuple[str, str, int]] = []

    async def get_credential(self) -> Credential | None:
        return self.credential

    async def store_credential(self, access_token: str, refresh_token: str, ttl_seconds: int) -> None:
        self.stored.append((access_token, refresh_token, ttl_seconds))
        self.credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=utc_now() + timedelta(seconds=ttl_seconds),
        )


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    """A credential that is valid for another 8 hours."""
    return InMemoryCredentialStore(
        Credential(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=utc_now() + timedelta(hours=8),
        )
    )


# ---------------------------------------------------------------------------
# Fake Fitbit API (httpx.MockTransport handler)
# ---------------------------------------------------------------------------


class FakeFitbitApi:
    """Routes requests by URL path to canned responses and records every call.

    Each route holds a queue of responses; the last one repeats once the
    queue is down to a single entry.  Unknown paths answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[tuple[int, Any, dict[str, str]]]] = {}
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: Any = {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 28800}

    def add(
        self,
        path: str,
        body: Any = None,
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        response_headers = RATE_LIMIT_HEADERS if headers is None else headers
        self.routes.setdefault(path, []).append(
            (status, body if body is not None else {}, response_headers)
        )

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/oauth2/token"]

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/oauth2/token"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth2/token":
            return httpx.Response(self.token_status, json=self.token_body)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"errors": [{"errorType": "not_found"}]})
        status, body, headers = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, json=body, headers=headers)


@pytest.fixture
def fitbit_api() -> FakeFitbitApi:
    return FakeFitbitApi()


@pytest.fixture
def http_client(fitbit_api: FakeFitbitApi) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fitbit_api))


@pytest.fixture
def token_manager(credential_store: InMemoryCredentialStore, http_client: httpx.AsyncClient) -> TokenManager:
    return TokenManager(
        credential_store,
        client_id="test_client_id",
        client_secret="test_client_secret",
        token_url=TOKEN_URL,
        http_client=http_client,
    )


@pytest.fixture
def api_client(token_manager: TokenManager, http_client: httpx.AsyncClient) -> RateLimitedClient:
    return RateLimitedClient(token_manager, base_url=API_BASE, http_client=http_client)


# ---------------------------------------------------------------------------
# Fake asyncpg pool
# ---------------------------------------------------------------------------


class FakeTransaction:
    async def __aenter__(self) -> "FakeTransaction":
        return self

    async def __aexit__(self, *exc_info: object) -> bool:
        return False


class FakeConnection:
    """Emulates the statements the ledger and credential store issue."""

    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db

    def transaction(self) -> FakeTransaction:
        return FakeTransaction()

    async def execute(self, sql: str, *args: Any) -> str:
        self.db.statements.append(sql)
        if sql == INSERT_SAMPLE_SQL:
            return self.db.insert_sample(*args)
        if sql == INSERT_SYNC_LOG_SQL:
            self.db.insert_sync_log(*args)
            return "INSERT 0 1"
        if sql == DELETE_CREDENTIALS_SQL:
            count = len(self.db.credentials)
            self.db.credentials.clear()
            return f"DELETE {count}"
        if sql == INSERT_CREDENTIAL_SQL:
            access, refresh, expires_at = args
            self.db.credentials.append(
                {"access_token": access, "refresh_token": refresh, "expires_at": expires_at}
            )
            return "INSERT 0 1"
        if sql == SCHEMA_SQL:
            return "CREATE TABLE"
        raise AssertionError(f"Unexpected statement: {sql}")

    async def fetchrow(self, sql: str, *args: Any) -> dict | None:
        if sql == SELECT_RATE_LIMIT_SQL:
            rows = [r for r in self.db.sync_log if r["rate_limit_remaining"] is not None]
            return rows[-1] if rows else None
        if sql == SELECT_CREDENTIAL_SQL:
            return self.db.credentials[-1] if self.db.credentials else None
        raise AssertionError(f"Unexpected query: {sql}")

    async def fetchval(self, sql: str, *args: Any) -> Any:
        if sql == SELECT_LATEST_SYNC_SQL:
            (data_type,) = args
            rows = [
                r for r in self.db.sync_log
                if r["data_type"] == data_type and r["status"] == "success"
            ]
            return rows[-1]["last_sync_time"] if rows else None
        raise AssertionError(f"Unexpected query: {sql}")

    async def fetch(self, sql: str, *args: Any) -> list[dict]:
        if sql == SELECT_SAMPLE_TYPES_SQL:
            return [{"type": t} for t in sorted({r["type"] for r in self.db.samples})]
        if sql == SELECT_SAMPLES_SINCE_SQL:
            since, types = args
            rows = [
                r for r in self.db.samples
                if (r["timestamp"] or r["start_time"]) > since
                and (types is None or r["type"] in types)
            ]
            return sorted(rows, key=lambda r: (r["timestamp"] or r["start_time"], r["id"]))
        if sql == SELECT_COUNTS_BY_DATE_SQL:
            day, types = args
            counts: dict[str, int] = {}
            for r in self.db.samples:
                if (r["timestamp"] or r["start_time"]).date() == day and (
                    types is None or r["type"] in types
                ):
                    counts[r["type"]] = counts.get(r["type"], 0) + 1
            return [{"type": t, "count": c} for t, c in sorted(counts.items())]
        raise AssertionError(f"Unexpected query: {sql}")


class FakeDatabase:
    """In-memory tables behind the fake pool."""

    def __init__(self) -> None:
        self.samples: list[dict] = []
        self.sync_log: list[dict] = []
        self.credentials: list[dict] = []
        self.statements: list[str] = []
        # JSON-encoded values the fake rejects like a failing constraint
        self.reject_values: set[str] = set()

    def insert_sample(self, type_: str, value: str, timestamp, start_time, end_time) -> str:
        if value in self.reject_values:
            raise asyncpg.exceptions.InvalidTextRepresentationError(f"invalid input: {value}")
        key = (type_, timestamp, start_time, end_time)
        if any((r["type"], r["timestamp"], r["start_time"], r["end_time"]) == key for r in self.samples):
            return "INSERT 0 0"
        self.samples.append(
            {
                "id": len(self.samples) + 1,
                "type": type_,
                "value": value,
                "timestamp": timestamp,
                "start_time": start_time,
                "end_time": end_time,
            }
        )
        return "INSERT 0 1"

    def insert_sync_log(self, data_type, last_sync_time, status, remaining, limit, reset_at, error) -> None:
        self.sync_log.append(
            {
                "id": len(self.sync_log) + 1,
                "data_type": data_type,
                "last_sync_time": last_sync_time,
                "status": status,
                "rate_limit_remaining": remaining,
                "rate_limit_limit": limit,
                "rate_limit_reset_at": reset_at,
                "error_message": error,
            }
        )


class FakePool:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.acquired = 0

    def acquire(self) -> "FakeAcquire":
        self.acquired += 1
        return FakeAcquire(FakeConnection(self.db))


class FakeAcquire:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    async def __aenter__(self) -> FakeConnection:
        return self.conn

    async def __aexit__(self, *exc_info: object) -> bool:
        return False


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_pool(fake_db: FakeDatabase) -> FakePool:
    return FakePool(fake_db)


@pytest.fixture
def ledger(fake_pool: FakePool) -> PersistenceLedger:
    return PersistenceLedger(fake_pool)
