"""
Procurement API client using httpx.

Provides async access to the Mercado Publico public API with:
- Rate-limit sentinel detection
- Typed errors for every failure mode
- Retry with per-error escalating delays
- Payload normalization into canonical records
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable

import httpx
import orjson

from tenderwatch.core.fetch.retries import DEFAULT_MAX_ATTEMPTS, build_retrying
from tenderwatch.core.normalize import (
    OrderCanonical,
    OrderSummary,
    TenderCanonical,
    format_query_date,
    normalize_order,
    normalize_order_summary,
    normalize_tender,
    parse_int,
)

from .base import (
    RATE_LIMIT_SENTINEL,
    ApiError,
    ApiTimeoutError,
    MalformedPayloadError,
    RateLimitedError,
    ServiceUnavailableError,
    TransportError,
    compute_delay,
    is_retryable,
)

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.mercadopublico.cl/servicios/v1/publico"

TENDERS_ENDPOINT = "licitaciones.json"
ORDERS_ENDPOINT = "ordenesdecompra.json"


def _service_message(payload: Any) -> str | None:
    """Message field of an error payload, if the service provided one."""
    if not isinstance(payload, dict):
        return None
    for key in ("Mensaje", "mensaje", "message", "Message"):
        value = payload.get(key)
        if value:
            return str(value)
    return None


class ProcurementClient:
    """Client for the procurement service's public JSON API.

    Features:
    - Persistent connection pooling
    - Every call retried per ``compute_delay`` up to ``max_attempts``
    - Empty ``Listado`` reported as not found, never as an error
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        ticket: str = "",
        timeout: float = 45.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize client.

        Args:
            base_url: API base URL
            ticket: Access ticket appended to every call
            timeout: Per-call timeout in seconds
            max_attempts: Attempts per call before giving up
            transport: Custom httpx transport (tests)
            sleep: Awaitable sleep used between attempts
        """
        self.base_url = base_url
        self.ticket = ticket
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "ProcurementClient":
        """Build a client from an ``ApiConfig``."""
        return cls(
            base_url=config.base_url,
            ticket=config.ticket,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
            **kwargs,
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    # =========================================================================
    # Core call
    # =========================================================================

    async def _call_once(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        client = await self._ensure_client()

        try:
            response = await client.get(endpoint, params=params)
        except httpx.TimeoutException as e:
            raise ApiTimeoutError(f"Timeout calling {endpoint}: {e}", endpoint=endpoint, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Transport error calling {endpoint}: {e}", endpoint=endpoint, cause=e) from e

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            payload = None
            decode_error: Exception | None = e
        else:
            decode_error = None

        status = response.status_code
        message = _service_message(payload)

        if status == 503:
            raise ServiceUnavailableError(
                message or "Service temporarily unavailable",
                endpoint=endpoint,
            )

        if isinstance(payload, dict) and parse_int(payload.get("Codigo")) == RATE_LIMIT_SENTINEL:
            raise RateLimitedError(
                message or "Request quota exceeded",
                status_code=status,
                endpoint=endpoint,
            )

        if status >= 400:
            raise TransportError(
                message or f"HTTP {status} from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )

        if decode_error is not None:
            raise MalformedPayloadError(
                f"Response from {endpoint} is not valid JSON",
                status_code=status,
                endpoint=endpoint,
                cause=decode_error,
            )
        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                f"Response from {endpoint} is not a JSON object",
                status_code=status,
                endpoint=endpoint,
            )

        return payload

    async def fetch(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Call an API endpoint with retries.

        Args:
            endpoint: Path relative to the base URL (e.g. ``licitaciones.json``)
            params: Query parameters; the ticket is added automatically

        Returns:
            Decoded JSON payload

        Raises:
            ApiError: The last typed error once attempts are exhausted, or
                MalformedPayloadError immediately
        """
        query = {**(params or {}), "ticket": self.ticket}

        async for attempt in build_retrying(
            compute_delay,
            is_retryable,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
            log=logger,
        ):
            with attempt:
                return await self._call_once(endpoint, query)

        raise ApiError(f"No attempt made for {endpoint}", endpoint=endpoint)  # pragma: no cover

    @staticmethod
    def _listing(payload: dict[str, Any]) -> list[dict[str, Any]]:
        items = payload.get("Listado")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    # =========================================================================
    # Capability operations
    # =========================================================================

    async def find_tender(self, code: str) -> TenderCanonical | None:
        """Look a tender up by its external code."""
        items = self._listing(await self.fetch(TENDERS_ENDPOINT, {"codigo": code}))
        if not items:
            return None
        return normalize_tender(items[0])

    async def find_order(self, code: str) -> OrderCanonical | None:
        """Look a purchase order up by code, including its line items."""
        items = self._listing(await self.fetch(ORDERS_ENDPOINT, {"codigo": code}))
        if not items:
            return None
        return normalize_order(items[0])

    async def list_orders(self, on_date: date, supplier_code: str) -> list[OrderSummary]:
        """List orders issued to a supplier on a given date."""
        payload = await self.fetch(
            ORDERS_ENDPOINT,
            {"fecha": format_query_date(on_date), "CodigoProveedor": supplier_code},
        )
        return [normalize_order_summary(item) for item in self._listing(payload)]

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ProcurementClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
