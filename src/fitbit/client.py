"""Rate-limit-aware Fitbit Web API client.

Every request reads Fitbit's rate-limit headers:

    fitbit-rate-limit-limit      — Window size (150 per hour for personal apps)
    fitbit-rate-limit-remaining  — Requests left in the current window
    fitbit-rate-limit-reset      — Seconds until the window resets

The client only reports the budget; deciding whether to spend it is the
orchestrator's job.  A 401 triggers one token refresh and one retry.  A 429
is surfaced immediately, never retried.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

import httpx

from src.fitbit.base import ApiResponse, RateLimitInfo, safe_int, seconds_until_next_hour, utc_now
from src.fitbit.errors import AuthExpired, RateLimited, UpstreamRequestFailed
from src.fitbit.tokens import TokenManager

logger = logging.getLogger("fitsync.fitbit.client")

_HEADER_REMAINING = "fitbit-rate-limit-remaining"
_HEADER_RESET = "fitbit-rate-limit-reset"
_HEADER_LIMIT = "fitbit-rate-limit-limit"

# One retry after a token refresh
_MAX_AUTH_RETRIES = 1


def extract_rate_limit_info(
    headers: Mapping[str, str], default_limit: int = 150, now: datetime | None = None
) -> RateLimitInfo:
    """Build a RateLimitInfo from response headers.

    ``remaining`` stays None when the header is absent or unparseable so
    that callers can tell "no snapshot" apart from "zero left".  A missing or
    non-positive reset header falls back to the next top of the hour, so a
    stored snapshot never looks expired the moment it is written.
    """
    observed_at = now or utc_now()
    remaining = safe_int(headers.get(_HEADER_REMAINING))
    reset = safe_int(headers.get(_HEADER_RESET))
    if reset is None or reset <= 0:
        reset = seconds_until_next_hour(observed_at)
    limit = safe_int(headers.get(_HEADER_LIMIT)) or default_limit
    return RateLimitInfo(
        remaining=remaining, reset_in_seconds=reset, limit=limit, observed_at=observed_at
    )


class RateLimitedClient:
    """Authenticated GET requests against the Fitbit Web API."""

    def __init__(
        self,
        tokens: TokenManager,
        base_url: str = "https://api.fitbit.com",
        timeout: float = 30.0,
        default_limit: int = 150,
        low_remaining_warning: int = 20,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            tokens:                Source of bearer tokens.
            base_url:              API root; endpoint paths are appended to it.
            timeout:               Per-request timeout, in seconds.
            default_limit:         Window size assumed when the limit header is absent.
            low_remaining_warning: Log a warning when fewer requests remain.
            http_client:           Optional pre-configured httpx client (for testing).
        """
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._default_limit = default_limit
        self._low_remaining_warning = low_remaining_warning
        self._http_client = http_client
        self.last_rate_limit: RateLimitInfo | None = None

    async def request(self, endpoint: str, params: dict[str, Any] | None = None) -> ApiResponse:
        """GET ``endpoint`` and return its JSON body with the rate-limit snapshot.

        Args:
            endpoint: Versioned API path, e.g. ``/1/user/-/activities/steps/...``.
            params:   Optional query parameters.

        Raises:
            AuthRequired / TokenRefreshFailed: From the token manager.
            AuthExpired:           401 again after the refresh-and-retry.
            RateLimited:           HTTP 429.
            UpstreamRequestFailed: Any other non-2xx answer, a non-JSON body,
                                   or a transport failure.
        """
        token = await self._tokens.ensure_valid_token()
        attempt = 0

        while True:
            response = await self._send(endpoint, params, token)
            if response.status_code != 401:
                break
            if attempt >= _MAX_AUTH_RETRIES:
                logger.error("Still unauthorized on %s after token refresh", endpoint)
                raise AuthExpired(endpoint)
            attempt += 1
            logger.info("Access token rejected on %s, refreshing and retrying", endpoint)
            token = await self._tokens.refresh()

        info = extract_rate_limit_info(response.headers, self._default_limit)

        if response.status_code == 429:
            remaining = info.remaining or 0
            self.last_rate_limit = RateLimitInfo(
                remaining=remaining,
                reset_in_seconds=info.reset_in_seconds,
                limit=info.limit,
                observed_at=info.observed_at,
            )
            logger.warning(
                "Rate limit exceeded on %s: %d/%d used, resets in %ds",
                endpoint, info.limit - remaining, info.limit, info.reset_in_seconds,
            )
            raise RateLimited(
                used=info.limit - remaining,
                remaining=remaining,
                reset_seconds=info.reset_in_seconds,
                limit=info.limit,
                endpoint=endpoint,
            )

        if info.has_snapshot:
            self.last_rate_limit = info

        if not response.is_success:
            logger.error("Request to %s failed with HTTP %d", endpoint, response.status_code)
            raise UpstreamRequestFailed(endpoint, response.status_code, response.text[:200])

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamRequestFailed(
                endpoint, response.status_code, "response body is not JSON"
            ) from exc

        self._log_budget(endpoint, info)
        return ApiResponse(data=data if isinstance(data, (dict, list)) else {}, rate_limit=info)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _send(self, endpoint: str, params: dict[str, Any] | None, token: str) -> httpx.Response:
        url = f"{self._base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept-Language": "en_US",
        }
        try:
            if self._http_client:
                return await self._http_client.get(
                    url, params=params, headers=headers, timeout=self._timeout
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", endpoint, exc)
            raise UpstreamRequestFailed(endpoint, detail=str(exc) or type(exc).__name__) from exc

    def _log_budget(self, endpoint: str, info: RateLimitInfo) -> None:
        if not info.has_snapshot:
            logger.info("GET %s (no rate-limit headers)", endpoint)
            return
        logger.info(
            "GET %s: %d/%d remaining (%d used), resets in %ds",
            endpoint, info.remaining, info.limit, info.used, info.reset_in_seconds,
        )
        if info.remaining < self._low_remaining_warning:
            logger.warning(
                "Rate limit getting low: %d/%d remaining, resets in %ds",
                info.remaining, info.limit, info.reset_in_seconds,
            )
