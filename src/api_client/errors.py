"""Error taxonomy for calls to the production backend."""

from __future__ import annotations


class MonitorError(Exception):
    """Base error for the production line monitor."""


class ApiError(MonitorError):
    """The backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, url: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.url = url

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class TransportError(MonitorError):
    """No response was received (connection refused, DNS, broken read)."""


class RequestTimeoutError(TransportError):
    """The request exceeded the configured timeout."""


class InvalidInputError(MonitorError, ValueError):
    """User input rejected before any request was made."""


class ResponseFormatError(MonitorError):
    """A 2xx response whose body does not match the expected shape."""
