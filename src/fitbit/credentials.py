"""Postgres-backed credential store.

At most one credential row is live.  A refresh replaces it with a
delete-then-insert inside one transaction, so readers never observe an
empty table mid-refresh.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from src.fitbit.base import Credential, utc_now
from src.services.database import get_connection

logger = logging.getLogger("fitsync.fitbit.credentials")

SELECT_CREDENTIAL_SQL = """
SELECT access_token, refresh_token, expires_at
FROM credentials
ORDER BY id DESC
LIMIT 1
"""

DELETE_CREDENTIALS_SQL = "DELETE FROM credentials"

INSERT_CREDENTIAL_SQL = """
INSERT INTO credentials (access_token, refresh_token, expires_at)
VALUES ($1, $2, $3)
"""


class PostgresCredentialStore:
    """``CredentialStore`` implementation on the ``credentials`` table."""

    def __init__(self, pool: Any | None = None) -> None:
        self._pool = pool

    async def get_credential(self) -> Credential | None:
        async with get_connection(self._pool) as conn:
            row = await conn.fetchrow(SELECT_CREDENTIAL_SQL)
        if row is None:
            return None
        return Credential(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=row["expires_at"],
        )

    async def store_credential(self, access_token: str, refresh_token: str, ttl_seconds: int) -> None:
        expires_at = utc_now() + timedelta(seconds=ttl_seconds)
        async with get_connection(self._pool) as conn:
            await conn.execute(DELETE_CREDENTIALS_SQL)
            await conn.execute(INSERT_CREDENTIAL_SQL, access_token, refresh_token, expires_at)
        logger.info("Credential stored (expires at %s)", expires_at.isoformat())
