"""Pytest configuration and shared fixtures.

Provides an in-memory store, a fake procurement API served through
httpx.MockTransport, and a fake sleep so nothing waits on real time.
"""
from __future__ import annotations

from datetime import date
from typing import Any

import httpx
import pytest

from tenderwatch.core.client import ProcurementClient
from tenderwatch.core.config import SupplierConfig
from tenderwatch.core.fetch import RequestPacer
from tenderwatch.core.normalize import TenderCanonical, format_query_date
from tenderwatch.persistence.db import create_db_engine, create_session_factory, session_scope
from tenderwatch.persistence.models import Base
from tenderwatch.persistence.repo import InstitutionRepository, TenderRepository

BASE_URL = "https://api.test/servicios/v1/publico"

SUPPLIERS = [
    SupplierConfig(name="Acme Medical", code="111"),
    SupplierConfig(name="Beta Pharma", code="222"),
]


# ── Fakes ────────────────────────────────────────────────────────────

class FakeSleep:
    """Awaitable sleep that records requested delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeProcurementApi:
    """In-memory stand-in for the tender and purchase-order endpoints."""

    def __init__(self):
        self.tenders: dict[str, dict[str, Any]] = {}
        self.orders: dict[str, dict[str, Any]] = {}
        self.listings: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.failing_listings: set[tuple[str, str]] = set()
        self.requests: list[httpx.Request] = []

    # Seeding helpers

    def add_tender(self, code: str, name: str = "Tender", status_code: int = 5, **extra: Any) -> None:
        self.tenders[code] = {
            "CodigoExterno": code,
            "Nombre": name,
            "CodigoEstado": status_code,
            "Fechas": {"FechaCierre": "2024-07-01T15:00:00"},
            "Comprador": {"NombreOrganismo": "Hospital Regional"},
            **extra,
        }

    def add_order(
        self,
        code: str,
        tender_code: str,
        supplier: SupplierConfig,
        on: date,
        amount: float = 1000.0,
        status_code: int = 6,
        name: str | None = None,
        listed_tender_code: str | None = None,
    ) -> None:
        """Register an order detail and list it on a date for a supplier.

        ``listed_tender_code`` is what the listing reports (defaults to the
        detail's tender code; pass "" to leave it out).
        """
        self.orders[code] = {
            "Codigo": code,
            "Nombre": name or f"Compra {code}",
            "CodigoEstado": status_code,
            "CodigoLicitacion": tender_code,
            "Total": amount,
            "TipoMoneda": "CLP",
            "Fechas": {"FechaEnvio": on.isoformat() + "T10:00:00"},
            "Proveedor": {"Nombre": supplier.name, "RutSucursal": "76.000.000-1"},
            "Items": {
                "Listado": [
                    {"Correlativo": 1, "Producto": "Suero", "Cantidad": 10, "PrecioNeto": amount / 10, "Total": amount},
                ]
            },
        }
        listed = tender_code if listed_tender_code is None else listed_tender_code
        key = (format_query_date(on), supplier.code)
        self.listings.setdefault(key, []).append(
            {
                "Codigo": code,
                "Nombre": name or f"Compra {code}",
                "CodigoEstado": status_code,
                "CodigoLicitacion": listed,
            }
        )

    def fail_listing(self, supplier: SupplierConfig, on: date) -> None:
        self.failing_listings.add((format_query_date(on), supplier.code))

    # Transport

    def detail_requests(self) -> list[str]:
        return [
            r.url.params["codigo"]
            for r in self.requests
            if r.url.path.endswith("ordenesdecompra.json") and "codigo" in r.url.params
        ]

    def listing_requests(self) -> list[tuple[str, str]]:
        return [
            (r.url.params["fecha"], r.url.params["CodigoProveedor"])
            for r in self.requests
            if r.url.path.endswith("ordenesdecompra.json") and "fecha" in r.url.params
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params

        if request.url.path.endswith("licitaciones.json"):
            item = self.tenders.get(params.get("codigo", ""))
            return httpx.Response(200, json={"Cantidad": 1 if item else 0, "Listado": [item] if item else []})

        if request.url.path.endswith("ordenesdecompra.json"):
            if "codigo" in params:
                item = self.orders.get(params["codigo"])
                return httpx.Response(200, json={"Cantidad": 1 if item else 0, "Listado": [item] if item else []})

            key = (params["fecha"], params["CodigoProveedor"])
            if key in self.failing_listings:
                return httpx.Response(500, json={"Mensaje": "Internal error"})
            listing = self.listings.get(key, [])
            return httpx.Response(200, json={"Cantidad": len(listing), "Listado": listing})

        return httpx.Response(404, json={"Mensaje": "Unknown endpoint"})


class FakePushGateway:
    """Push gateway accepting every message unless told to fail a chunk."""

    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.chunks: list[list[dict[str, Any]]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        import json

        chunk = json.loads(request.content)
        self.chunks.append(chunk)
        if self.fail_when is not None and self.fail_when(chunk):
            return httpx.Response(500, json={"errors": [{"message": "boom"}]})
        return httpx.Response(200, json={"data": [{"status": "ok", "id": str(i)} for i in range(len(chunk))]})


# ── Database fixtures ────────────────────────────────────────────────

@pytest.fixture()
def db_engine():
    """In-memory SQLite engine with all tables."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def scope(db_engine):
    """Transactional session scope over the in-memory engine."""
    return session_scope(create_session_factory(db_engine))


def track_tender(scope, code: str, user_id: int = 1, total_amount: float | None = None) -> None:
    """Seed a tracked tender row."""
    with scope() as session:
        repo = TenderRepository(session)
        repo.upsert(TenderCanonical(code=code, name=f"Tender {code}"), user_id)
        if total_amount is not None:
            repo.set_contract_data(code, user_id, total_amount=total_amount)


def add_institution(scope, name: str) -> int:
    """Seed an institution and return its id."""
    with scope() as session:
        institution, _ = InstitutionRepository(session).create(name)
        return institution.id


# ── API fixtures ─────────────────────────────────────────────────────

@pytest.fixture()
def fake_sleep():
    return FakeSleep()


@pytest.fixture()
def api():
    return FakeProcurementApi()


@pytest.fixture()
def make_client(api, fake_sleep):
    """Factory for clients talking to the fake API."""

    def _make(**kwargs) -> ProcurementClient:
        return ProcurementClient(
            base_url=BASE_URL,
            ticket="test-ticket",
            transport=httpx.MockTransport(kwargs.pop("handler", api.handler)),
            sleep=fake_sleep,
            **kwargs,
        )

    return _make


@pytest.fixture()
def pacer(fake_sleep):
    return RequestPacer(sleep=fake_sleep)


# ── Markers ──────────────────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks slow tests")
