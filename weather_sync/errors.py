"""Exception taxonomy shared by the cache, resilience layer and API client."""

from __future__ import annotations

from typing import Any, Optional


class WeatherApiError(Exception):
    """Failure talking to the upstream weather/geocoding service.

    `status` carries the HTTP status when there was a response; its absence
    means the request never completed (transport-level failure).
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details


class TransportError(WeatherApiError):
    """Connection failure, DNS error, or timeout. Retryable."""

    def __init__(self, message: str, *, timeout: bool = False, details: Any = None) -> None:
        super().__init__(message, None, "TIMEOUT" if timeout else "TRANSPORT_ERROR", details)
        self.timeout = timeout


class HttpClientError(WeatherApiError):
    """4xx response other than 429. Not retryable."""


class RateLimited(WeatherApiError):
    """HTTP 429. Retryable."""


class HttpServerError(WeatherApiError):
    """5xx response. Retryable."""


class InvalidResponseError(WeatherApiError):
    """The upstream answered but the payload did not match its schema. Not retryable."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message, None, "INVALID_RESPONSE", details)


class RetryExhausted(WeatherApiError):
    """Every attempt failed; wraps the last underlying error."""

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        super().__init__(
            f"Request failed after {attempts} attempts: {last_error}",
            getattr(last_error, "status", None),
            "RETRY_EXHAUSTED",
        )
        self.last_error = last_error
        self.attempts = attempts


class CircuitOpenError(Exception):
    """Raised without invoking the wrapped operation while a breaker is open."""

    def __init__(self, name: str, retry_in: float = 0.0) -> None:
        super().__init__(f"Circuit breaker '{name}' is OPEN")
        self.name = name
        self.retry_in = retry_in


class CacheError(Exception):
    """A cache operation failed; `operation` names which one."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class LocationNotFoundError(KeyError):
    """No tracked location has the requested id."""

    def __init__(self, location_id: str) -> None:
        super().__init__(location_id)
        self.location_id = location_id

    def __str__(self) -> str:
        return f"Location not found: {self.location_id}"


class LocationLimitError(ValueError):
    """Adding the location would exceed the comparison limit or duplicate an id."""


def error_for_status(message: str, status: int, details: Any = None) -> WeatherApiError:
    """Map an HTTP status to the matching WeatherApiError subclass."""
    if status == 429:
        return RateLimited(message, status, "RATE_LIMITED", details)
    if 500 <= status < 600:
        return HttpServerError(message, status, "HTTP_SERVER_ERROR", details)
    if 400 <= status < 500:
        return HttpClientError(message, status, "HTTP_CLIENT_ERROR", details)
    return WeatherApiError(message, status, "HTTP_ERROR", details)
