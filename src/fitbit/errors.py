"""Exception taxonomy for the sync core.

Every failure carries structured fields so the caller can map it to a
status code or exit code without parsing the message.
"""

from __future__ import annotations


class FitbitSyncError(Exception):
    """Base class for all sync errors."""


class AuthRequired(FitbitSyncError):
    """No credential is stored; the OAuth handshake has not been completed."""

    def __init__(self, message: str = "No credential stored. Complete the OAuth flow first.") -> None:
        super().__init__(message)


class TokenRefreshFailed(FitbitSyncError):
    """The provider rejected the refresh, or the refresh request could not be sent."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthExpired(FitbitSyncError):
    """The API returned 401 again after a fresh token was obtained."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(f"Authorization rejected for {endpoint} after token refresh")
        self.endpoint = endpoint


class RateLimited(FitbitSyncError):
    """The API answered 429."""

    def __init__(
        self, used: int, remaining: int, reset_seconds: int, limit: int, endpoint: str = ""
    ) -> None:
        super().__init__(
            f"Rate limit exceeded. Used {used}/{limit} requests. "
            f"{remaining} remaining. Resets in {reset_seconds} seconds"
        )
        self.used = used
        self.remaining = remaining
        self.reset_seconds = reset_seconds
        self.limit = limit
        self.endpoint = endpoint


class RateLimitTooLow(FitbitSyncError):
    """The pre-flight budget check refused to start an invocation."""

    def __init__(self, remaining: int, required: int, reset_seconds: int) -> None:
        super().__init__(
            f"Rate limit too low: {remaining} requests remaining, need at least "
            f"{required}. Rate limit resets in {reset_seconds} seconds"
        )
        self.remaining = remaining
        self.required = required
        self.reset_seconds = reset_seconds


class UpstreamRequestFailed(FitbitSyncError):
    """Any other non-2xx response or transport failure."""

    def __init__(self, endpoint: str, status_code: int | None = None, detail: str = "") -> None:
        status = f"HTTP {status_code}" if status_code is not None else "transport error"
        message = f"Request to {endpoint} failed ({status})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class ValidationError(FitbitSyncError, ValueError):
    """Invalid caller input (date range, data type selection)."""
