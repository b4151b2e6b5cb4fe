"""Bearer-token lifecycle for the single Fitbit credential.

The OAuth authorization-code exchange happens elsewhere; this module only
consumes the stored credential and keeps it fresh.

Refreshes are not serialized.  Two concurrent invocations may both refresh;
each stores a valid pair and the last write wins.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from src.fitbit.base import Credential
from src.fitbit.errors import AuthRequired, TokenRefreshFailed

logger = logging.getLogger("fitsync.fitbit.tokens")


class CredentialStore(Protocol):
    """Persistence contract for the credential pair."""

    async def get_credential(self) -> Credential | None:
        ...

    async def store_credential(self, access_token: str, refresh_token: str, ttl_seconds: int) -> None:
        """Atomically replace the stored pair; expires_at = now + ttl_seconds."""
        ...


class TokenManager:
    """Hands out a valid access token, refreshing it when close to expiry."""

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        token_url: str = "https://api.fitbit.com/oauth2/token",
        refresh_buffer_seconds: int = 3600,
        default_expires_in: int = 28800,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the token manager.

        Args:
            store:                  Credential persistence.
            client_id:              Fitbit OAuth2 client ID.
            client_secret:          Fitbit OAuth2 client secret.
            token_url:              Provider token endpoint.
            refresh_buffer_seconds: Refresh when fewer seconds than this remain.
            default_expires_in:     TTL assumed when the provider omits ``expires_in``.
            timeout:                Timeout for the refresh request, in seconds.
            http_client:            Optional pre-configured httpx client (for testing).
        """
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._refresh_buffer = refresh_buffer_seconds
        self._default_expires_in = default_expires_in
        self._timeout = timeout
        self._http_client = http_client

    async def ensure_valid_token(self) -> str:
        """Return the current access token, refreshing first if it expires within the buffer.

        Raises:
            AuthRequired:       No credential is stored.
            TokenRefreshFailed: A needed refresh failed.
        """
        credential = await self._store.get_credential()
        if credential is None:
            raise AuthRequired()

        remaining = credential.seconds_until_expiry()
        if remaining < self._refresh_buffer:
            logger.info("Access token expires in %.0fs, refreshing", remaining)
            return await self.refresh()
        return credential.access_token

    async def refresh(self) -> str:
        """Exchange the stored refresh token for a new pair and persist it.

        Returns:
            The new access token.

        Raises:
            AuthRequired:       No credential (or no refresh token) is stored.
            TokenRefreshFailed: Transport error or non-2xx answer from the provider.
        """
        credential = await self._store.get_credential()
        if credential is None or not credential.refresh_token:
            raise AuthRequired()

        form = {"grant_type": "refresh_token", "refresh_token": credential.refresh_token}
        auth = httpx.BasicAuth(self._client_id, self._client_secret)

        try:
            if self._http_client:
                response = await self._http_client.post(
                    self._token_url, data=form, auth=auth, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._token_url, data=form, auth=auth)
        except httpx.HTTPError as exc:
            logger.error("Token refresh request failed: %s", exc)
            raise TokenRefreshFailed(f"Token refresh request failed: {exc}") from exc

        if not response.is_success:
            logger.error("Token refresh rejected (HTTP %d): %s", response.status_code, response.text)
            raise TokenRefreshFailed(
                f"Token refresh rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenRefreshFailed(
                "Token endpoint returned no access_token", status_code=response.status_code
            ) from exc

        refresh_token = data.get("refresh_token") or credential.refresh_token
        try:
            expires_in = int(data.get("expires_in", self._default_expires_in))
        except (TypeError, ValueError):
            expires_in = self._default_expires_in

        await self._store.store_credential(access_token, refresh_token, expires_in)
        logger.info("Token refreshed successfully (expires in %ds)", expires_in)
        return access_token
