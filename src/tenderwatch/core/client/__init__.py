"""Procurement API client."""

from .base import (
    RATE_LIMIT_SENTINEL,
    ApiError,
    RateLimitedError,
    ServiceUnavailableError,
    ApiTimeoutError,
    TransportError,
    MalformedPayloadError,
    compute_delay,
    is_retryable,
)
from .http_client import ProcurementClient, TENDERS_ENDPOINT, ORDERS_ENDPOINT

__all__ = [
    # Errors
    "RATE_LIMIT_SENTINEL",
    "ApiError",
    "RateLimitedError",
    "ServiceUnavailableError",
    "ApiTimeoutError",
    "TransportError",
    "MalformedPayloadError",
    # Retry policy
    "compute_delay",
    "is_retryable",
    # Client
    "ProcurementClient",
    "TENDERS_ENDPOINT",
    "ORDERS_ENDPOINT",
]
