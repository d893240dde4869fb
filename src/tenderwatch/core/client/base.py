"""
Procurement API error taxonomy and retry delays.

Every failure of a procurement API call surfaces as an ``ApiError``
subclass. The ``retryable`` flag decides whether the client tries again;
``compute_delay`` decides how long it waits first.
"""

from __future__ import annotations


# Payload code the procurement service returns instead of data when the
# caller exceeded its request quota.
RATE_LIMIT_SENTINEL = 10500


class ApiError(Exception):
    """Base exception for procurement API errors."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        endpoint: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.cause = cause


class RateLimitedError(ApiError):
    """The payload carried the rate-limit sentinel."""


class ServiceUnavailableError(ApiError):
    """HTTP 503 from the procurement service."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        status_code: int | None = 503,
        endpoint: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, status_code, endpoint, cause)


class ApiTimeoutError(ApiError):
    """Connect or read timeout."""


class TransportError(ApiError):
    """Any other network or HTTP failure."""


class MalformedPayloadError(ApiError):
    """Response body is not a JSON object."""

    retryable = False


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ApiError) and error.retryable


def compute_delay(attempt: int, error: BaseException) -> float:
    """Seconds to wait after a failed attempt before the next one.

    Args:
        attempt: 1-based number of the attempt that just failed
        error: The error it failed with

    Returns:
        Delay in seconds
    """
    if isinstance(error, RateLimitedError):
        return attempt * 5.0
    if isinstance(error, ServiceUnavailableError):
        return attempt * 10.0
    if isinstance(error, ApiTimeoutError):
        return 5.0
    return 3.0
