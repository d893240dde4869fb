"""
Canonical tender and purchase-order models.

Provides a clean interface between raw API payloads and database persistence.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .parsing import (
    normalize_code,
    normalize_whitespace,
    parse_amount,
    parse_date,
    parse_int,
)


# =============================================================================
# Status Enums
# =============================================================================


class OrderStatus(str, Enum):
    """Purchase-order status as reported by the procurement service."""

    SENT_TO_SUPPLIER = "Sent to Supplier"
    IN_PROCESS = "In Process"
    ACCEPTED = "Accepted"
    CANCELLED = "Cancelled"
    CONFIRMED_RECEIPT = "Confirmed Receipt"
    PENDING_RECEIPT = "Pending Receipt"
    PARTIALLY_RECEIVED = "Partially Received"
    CONFIRMED_RECEIPT_INCOMPLETE = "Confirmed Receipt Incomplete"
    UNKNOWN = "Unknown"

    @classmethod
    def from_code(cls, code: Any) -> "OrderStatus":
        return ORDER_STATUS_CODES.get(parse_int(code), cls.UNKNOWN)  # type: ignore[arg-type]


class TenderStatus(str, Enum):
    """Tender status as reported by the procurement service."""

    PUBLISHED = "Published"
    CLOSED = "Closed"
    DESERTED = "Deserted"
    AWARDED = "Awarded"
    REVOKED = "Revoked"
    SUSPENDED = "Suspended"
    UNKNOWN = "Unknown"

    @classmethod
    def from_code(cls, code: Any) -> "TenderStatus":
        return TENDER_STATUS_CODES.get(parse_int(code), cls.UNKNOWN)  # type: ignore[arg-type]


ORDER_STATUS_CODES: dict[int, OrderStatus] = {
    4: OrderStatus.SENT_TO_SUPPLIER,
    5: OrderStatus.IN_PROCESS,
    6: OrderStatus.ACCEPTED,
    9: OrderStatus.CANCELLED,
    12: OrderStatus.CONFIRMED_RECEIPT,
    13: OrderStatus.PENDING_RECEIPT,
    14: OrderStatus.PARTIALLY_RECEIVED,
    15: OrderStatus.CONFIRMED_RECEIPT_INCOMPLETE,
}

TENDER_STATUS_CODES: dict[int, TenderStatus] = {
    5: TenderStatus.PUBLISHED,
    6: TenderStatus.CLOSED,
    7: TenderStatus.DESERTED,
    8: TenderStatus.AWARDED,
    18: TenderStatus.REVOKED,
    19: TenderStatus.SUSPENDED,
}


# =============================================================================
# Canonical Records
# =============================================================================


@dataclass
class TenderCanonical:
    """Normalized tender summary ready for persistence."""

    code: str
    name: str | None = None
    status: str = TenderStatus.UNKNOWN.value
    status_code: int | None = None
    closing_date: datetime | None = None
    issuing_org: str | None = None
    estimated_amount: float = 0.0
    raw_data: dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("raw_data")
        return data


@dataclass
class OrderLineCanonical:
    """A line item of a purchase order."""

    position: int
    product_code: str | None = None
    product: str | None = None
    description: str | None = None
    quantity: float = 0.0
    unit: str | None = None
    unit_price: float = 0.0
    total: float = 0.0


@dataclass
class OrderSummary:
    """An entry of the order listing by date and supplier.

    The listing does not reliably carry the tender code; ``tender_code`` is
    empty when absent.
    """

    code: str
    name: str = ""
    status_code: int | None = None
    tender_code: str = ""


@dataclass
class OrderCanonical:
    """Normalized purchase order ready for persistence.

    ``tender_code`` holds the authoritative value reported by the service
    until the matcher resolves it against the tracked tenders.
    """

    code: str
    tender_code: str = ""
    name: str | None = None
    status: str = OrderStatus.UNKNOWN.value
    status_code: int | None = None
    supplier_name: str = ""
    supplier_tax_id: str = ""
    amount: float = 0.0
    currency: str = "CLP"
    sent_date: datetime | None = None
    accepted_date: datetime | None = None
    lines: list[OrderLineCanonical] = field(default_factory=list)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value

    def to_dict(self) -> dict[str, Any]:
        """Column values for persistence, without line items."""
        data = asdict(self)
        data.pop("lines")
        return data


# =============================================================================
# Payload Normalization
# =============================================================================


def _nested(payload: dict[str, Any], *path: str) -> Any:
    value: Any = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def normalize_tender(item: dict[str, Any]) -> TenderCanonical:
    """Normalize one ``Listado`` entry of the tender lookup."""
    status_code = parse_int(item.get("CodigoEstado"))
    status = TenderStatus.from_code(status_code)

    return TenderCanonical(
        code=normalize_code(item.get("CodigoExterno")),
        name=normalize_whitespace(item.get("Nombre")) or None,
        status=status.value,
        status_code=status_code,
        closing_date=parse_date(_first(_nested(item, "Fechas", "FechaCierre"), item.get("FechaCierre"))).value,
        issuing_org=_first(_nested(item, "Comprador", "NombreOrganismo"), item.get("NombreOrganismo")),
        estimated_amount=parse_amount(item.get("MontoEstimado")),
        raw_data=item,
    )


def normalize_order_summary(item: dict[str, Any]) -> OrderSummary:
    """Normalize one ``Listado`` entry of the order listing."""
    return OrderSummary(
        code=normalize_code(item.get("Codigo")),
        name=normalize_whitespace(item.get("Nombre")),
        status_code=parse_int(item.get("CodigoEstado")),
        tender_code=normalize_code(_first(item.get("CodigoLicitacion"), item.get("Licitacion"))),
    )


def normalize_order(item: dict[str, Any]) -> OrderCanonical:
    """Normalize one ``Listado`` entry of the order detail lookup."""
    status_code = parse_int(item.get("CodigoEstado"))
    code = normalize_code(item.get("Codigo"))

    lines = []
    raw_lines = _nested(item, "Items", "Listado") or []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            continue
        lines.append(
            OrderLineCanonical(
                position=parse_int(raw.get("Correlativo")) or index,
                product_code=_first(raw.get("CodigoProducto")) and str(raw.get("CodigoProducto")),
                product=normalize_whitespace(raw.get("Producto")) or None,
                description=normalize_whitespace(raw.get("EspecificacionComprador")) or None,
                quantity=parse_amount(raw.get("Cantidad")),
                unit=raw.get("Unidad"),
                unit_price=parse_amount(raw.get("PrecioNeto")),
                total=parse_amount(raw.get("Total")),
            )
        )

    return OrderCanonical(
        code=code,
        tender_code=normalize_code(_first(item.get("CodigoLicitacion"), item.get("Licitacion"))),
        name=normalize_whitespace(item.get("Nombre")) or f"OC {code}",
        status=OrderStatus.from_code(status_code).value,
        status_code=status_code,
        supplier_name=normalize_whitespace(_nested(item, "Proveedor", "Nombre")),
        supplier_tax_id=_first(
            _nested(item, "Proveedor", "RutSucursal"),
            _nested(item, "Proveedor", "RutProveedor"),
        ) or "",
        amount=parse_amount(item.get("Total")),
        currency=item.get("TipoMoneda") or "CLP",
        sent_date=parse_date(_first(_nested(item, "Fechas", "FechaEnvio"), item.get("FechaEnvio"))).value,
        accepted_date=parse_date(
            _first(_nested(item, "Fechas", "FechaAceptacion"), item.get("FechaAceptacion"))
        ).value,
        lines=lines,
    )
