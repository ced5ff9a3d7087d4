# riot/errors.py – taxonomie des erreurs Riot API

from typing import Any, Optional


class RiotAPIError(Exception):
    """Base exception for Riot API errors."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        endpoint: Optional[str] = None,
        credential_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.endpoint = endpoint
        self.credential_id = credential_id


class ValidationError(RiotAPIError):
    """Caller supplied malformed identifying input. Never retried."""


class NotFound(RiotAPIError):
    """The upstream has no such account, profile or match."""

    def __init__(self, message: str, context: Optional[str] = None, **kwargs):
        super().__init__(message, status=kwargs.pop("status", 404), **kwargs)
        self.context = context


class AuthFailure(RiotAPIError):
    """Every credential tried was rejected by the upstream."""

    def __init__(self, message: str, credential_hint: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.credential_hint = credential_hint


class RateLimitError(RiotAPIError):
    """Raised when rate limit is exceeded and retry fails."""


class NetworkError(RiotAPIError):
    """Transient network failure that outlived its retries."""


class RequestTimeout(NetworkError):
    """The upstream did not answer in time, retries exhausted."""


class UpstreamError(RiotAPIError):
    """Unexpected status code or response shape."""


class NoCredentialsAvailable(RiotAPIError):
    """No usable API key is configured (or all were rejected)."""
