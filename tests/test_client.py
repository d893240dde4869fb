"""Tests for the procurement API client and its retry policy."""
import asyncio
from datetime import date

import httpx
import pytest

from tenderwatch.core.client import (
    ApiTimeoutError,
    MalformedPayloadError,
    RateLimitedError,
    ServiceUnavailableError,
    TransportError,
    compute_delay,
    is_retryable,
)
from tenderwatch.core.normalize import OrderStatus, TenderStatus

from conftest import SUPPLIERS

TENDER_PAYLOAD = {
    "Listado": [
        {
            "CodigoExterno": "1057480-12-LE24",
            "Nombre": "Suministro de sueros",
            "CodigoEstado": 5,
            "Fechas": {"FechaCierre": "2024-07-01T15:00:00"},
            "Comprador": {"NombreOrganismo": "Hospital Regional"},
        }
    ]
}

RATE_LIMITED = {"Codigo": 10500, "Mensaje": "Lo sentimos. Hemos detectado que existen peticiones simultáneas."}


def sequence_handler(responses):
    """Handler returning the given responses in order, recording each request."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    handler.calls = calls
    return handler


# ── Delay policy ─────────────────────────────────────────────────────

class TestComputeDelay:
    def test_rate_limit_grows_by_five_seconds(self):
        error = RateLimitedError("quota")
        assert [compute_delay(n, error) for n in (1, 2, 3)] == [5.0, 10.0, 15.0]

    def test_unavailable_grows_by_ten_seconds(self):
        error = ServiceUnavailableError()
        assert [compute_delay(n, error) for n in (1, 2)] == [10.0, 20.0]

    def test_timeout_is_flat(self):
        assert compute_delay(1, ApiTimeoutError("t")) == 5.0
        assert compute_delay(4, ApiTimeoutError("t")) == 5.0

    def test_other_errors_wait_three_seconds(self):
        assert compute_delay(2, TransportError("reset")) == 3.0

    def test_malformed_payload_is_not_retryable(self):
        assert not is_retryable(MalformedPayloadError("bad"))
        assert is_retryable(TransportError("reset"))
        assert not is_retryable(ValueError("not an api error"))


# ── Retry accounting ─────────────────────────────────────────────────

def test_rate_limit_retried_until_success(make_client, fake_sleep):
    """Two sentinel responses then data: three calls, escalating sleeps."""
    handler = sequence_handler([
        httpx.Response(200, json=RATE_LIMITED),
        httpx.Response(200, json=RATE_LIMITED),
        httpx.Response(200, json=TENDER_PAYLOAD),
    ])
    client = make_client(handler=handler)

    tender = asyncio.run(client.find_tender("1057480-12-LE24"))

    assert tender is not None
    assert tender.code == "1057480-12-LE24"
    assert len(handler.calls) == 3
    assert fake_sleep.calls == [5.0, 10.0]


def test_service_unavailable_exhausts_attempts(make_client, fake_sleep):
    handler = sequence_handler([httpx.Response(503, text="unavailable")])
    client = make_client(handler=handler, max_attempts=3)

    with pytest.raises(ServiceUnavailableError) as exc_info:
        asyncio.run(client.find_tender("X-1"))

    assert exc_info.value.status_code == 503
    assert len(handler.calls) == 3
    assert fake_sleep.calls == [10.0, 20.0]


def test_malformed_payload_fails_without_retry(make_client, fake_sleep):
    handler = sequence_handler([httpx.Response(200, text="<html>maintenance</html>")])
    client = make_client(handler=handler)

    with pytest.raises(MalformedPayloadError):
        asyncio.run(client.find_tender("X-1"))

    assert len(handler.calls) == 1
    assert fake_sleep.calls == []


def test_timeout_mapped_and_retried(make_client, fake_sleep):
    request = httpx.Request("GET", "https://api.test/")
    handler = sequence_handler([
        httpx.ReadTimeout("read timed out", request=request),
        httpx.Response(200, json=TENDER_PAYLOAD),
    ])
    client = make_client(handler=handler)

    tender = asyncio.run(client.find_tender("1057480-12-LE24"))

    assert tender is not None
    assert fake_sleep.calls == [5.0]


def test_connection_error_becomes_transport_error(make_client):
    request = httpx.Request("GET", "https://api.test/")
    handler = sequence_handler([httpx.ConnectError("refused", request=request)])
    client = make_client(handler=handler, max_attempts=2)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.find_tender("X-1"))

    assert isinstance(exc_info.value.cause, httpx.ConnectError)


def test_http_error_status_carries_service_message(make_client):
    handler = sequence_handler([httpx.Response(400, json={"Mensaje": "Ticket inválido"})])
    client = make_client(handler=handler, max_attempts=1)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.find_tender("X-1"))

    assert exc_info.value.status_code == 400
    assert "Ticket inválido" in str(exc_info.value)


# ── Capability operations ────────────────────────────────────────────

def test_find_tender_normalizes_payload(api, make_client):
    api.add_tender("1057480-12-LE24", name="  Suministro   de sueros ", status_code=8)
    client = make_client()

    tender = asyncio.run(client.find_tender("1057480-12-LE24"))

    assert tender.name == "Suministro de sueros"
    assert tender.status == TenderStatus.AWARDED.value
    assert tender.issuing_org == "Hospital Regional"
    assert tender.closing_date.year == 2024
    request = api.requests[0]
    assert request.url.params["ticket"] == "test-ticket"
    assert request.url.params["codigo"] == "1057480-12-LE24"


def test_unknown_codes_are_not_found(make_client):
    client = make_client()

    assert asyncio.run(client.find_tender("NOPE-1")) is None
    assert asyncio.run(client.find_order("NOPE-2")) is None


def test_find_order_includes_lines(api, make_client):
    api.add_order("4321-55-SE24", "1057480-12-LE24", SUPPLIERS[0], date(2024, 6, 3), amount=2500, status_code=9)
    client = make_client()

    order = asyncio.run(client.find_order("4321-55-SE24"))

    assert order.tender_code == "1057480-12-LE24"
    assert order.status == OrderStatus.CANCELLED.value
    assert order.is_cancelled
    assert order.supplier_name == "Acme Medical"
    assert order.amount == 2500.0
    assert len(order.lines) == 1
    assert order.lines[0].unit_price == 250.0


def test_list_orders_sends_date_and_supplier(api, make_client):
    on = date(2024, 6, 1)
    api.add_order("A-1", "T-1", SUPPLIERS[1], on)
    client = make_client()

    summaries = asyncio.run(client.list_orders(on, SUPPLIERS[1].code))

    assert [s.code for s in summaries] == ["A-1"]
    assert summaries[0].tender_code == "T-1"
    assert api.listing_requests() == [("01062024", "222")]
