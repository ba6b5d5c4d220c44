from __future__ import annotations

from typing import Any, Optional


class FetchError(Exception):
    """Base class for every failure raised by the fetch layer."""


class TransportError(FetchError):
    """Network or HTTP failure; carries the HTTP status when one was received."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
        timeout: bool = False,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url
        self.timeout = timeout
        self.body = body


class NotFoundError(TransportError):
    """HTTP 404. Never retried."""

    def __init__(self, message: str, url: Optional[str] = None, body: Any = None) -> None:
        super().__init__(message, status=404, url=url, body=body)


class RateLimitedError(TransportError):
    """HTTP 429. Shrinks the request ceiling before being retried."""

    def __init__(self, message: str, url: Optional[str] = None, body: Any = None) -> None:
        super().__init__(message, status=429, url=url, body=body)


class DatabaseError(FetchError):
    """The wiki API reported a database-class error; aborts a paginated query."""

    def __init__(self, message: str, error: Optional[dict] = None) -> None:
        super().__init__(message)
        self.error = error or {}


class RenderBackendError(FetchError):
    """Structured api_error returned by an article rendering backend."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class CacheWriteError(FetchError):
    """Writing a response to the local download cache failed."""


class CapabilityProbeError(FetchError):
    """A capability probe request failed or returned unexpected content."""
