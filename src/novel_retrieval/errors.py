"""Error taxonomy for the acquisition pipeline."""

from enum import Enum

import httpx


class NovelRetrievalError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(NovelRetrievalError):
    """Input rejected before any network activity (bad URL, incomplete rule)."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = list(fields or [])


class NetworkReason(str, Enum):
    """Why a network operation failed."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class NetworkError(NovelRetrievalError):
    """Fetch failure, or an explicitly cancelled download."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        reason: NetworkReason = NetworkReason.UNKNOWN,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self.reason == NetworkReason.CANCELLED

    @property
    def retryable(self) -> bool:
        if self.reason in (NetworkReason.TIMEOUT, NetworkReason.CONNECTION):
            return True
        return self.status_code is not None and (
            self.status_code == 429 or self.status_code >= 500
        )

    @classmethod
    def cancellation(cls, message: str = "Download cancelled") -> "NetworkError":
        return cls(message, reason=NetworkReason.CANCELLED)

    @classmethod
    def from_status(cls, url: str, status_code: int) -> "NetworkError":
        return cls(
            http_error_message(status_code),
            url=url,
            status_code=status_code,
            reason=NetworkReason.HTTP_STATUS,
        )

    @classmethod
    def from_exception(cls, url: str, exc: Exception) -> "NetworkError":
        """Classify an httpx (or other) exception raised while fetching ``url``."""
        if isinstance(exc, NetworkError):
            return exc
        if isinstance(exc, httpx.TimeoutException):
            return cls(f"Request timed out: {exc}", url=url, reason=NetworkReason.TIMEOUT)
        if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
            return cls(f"Connection failed: {exc}", url=url, reason=NetworkReason.CONNECTION)
        if isinstance(exc, httpx.HTTPStatusError):
            return cls.from_status(url, exc.response.status_code)
        return cls(f"Request failed: {exc}", url=url)


class ParseError(NovelRetrievalError):
    """The index page yielded nothing to download."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class DatabaseError(NovelRetrievalError):
    """Persistence boundary failure. Always fatal."""


_HTTP_MESSAGES: dict[int, str] = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    408: "Request timeout",
    429: "Too many requests, slow down and retry later",
    500: "Internal server error",
    502: "Bad gateway",
    503: "Service unavailable",
    504: "Gateway timeout",
}


def http_error_message(status_code: int) -> str:
    """Human-readable message for an HTTP status code."""
    message = _HTTP_MESSAGES.get(status_code)
    if message is None:
        if 400 <= status_code < 500:
            message = "Client error"
        elif status_code >= 500:
            message = "Server error"
        else:
            message = "Unexpected response"
    return f"{message} ({status_code})"
