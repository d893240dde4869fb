"""
Export and import of tracked tenders with their purchase orders.

The exchange document moves a user's tracking data between stores::

    {
        "exported_at": "2026-10-19T12:00:00",
        "user_id": 1,
        "tenders": [{"tender": {...}, "orders": [{..., "lines": [...]}]}],
    }

Datetimes are left as ``datetime`` objects; the CLI writes the document
with orjson, which renders them as ISO 8601.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from tenderwatch.core.normalize import (
    OrderCanonical,
    OrderLineCanonical,
    TenderCanonical,
    normalize_code,
    parse_amount,
    parse_date,
    parse_int,
)
from tenderwatch.persistence.models import PurchaseOrder, Tender

TENDER_FIELDS = (
    "code",
    "name",
    "status",
    "status_code",
    "closing_date",
    "issuing_org",
    "estimated_amount",
    "institution_id",
    "line",
    "total_amount",
    "due_date",
)

ORDER_FIELDS = (
    "code",
    "tender_code",
    "name",
    "status",
    "status_code",
    "supplier_name",
    "supplier_tax_id",
    "amount",
    "currency",
    "sent_date",
    "accepted_date",
)


class SyncFormatError(ValueError):
    """The import document does not have the exchange layout."""


@dataclass
class ImportResult:
    """Counts of one import."""

    tenders: int = 0
    orders_new: int = 0
    orders_skipped: int = 0
    orders_failed: int = 0


# =============================================================================
# Rows -> records
# =============================================================================


def tender_record(row: Tender) -> dict[str, Any]:
    return {name: getattr(row, name) for name in TENDER_FIELDS}


def order_from_row(row: PurchaseOrder) -> OrderCanonical:
    """Canonical form of a stored order, line items included."""
    return OrderCanonical(
        **{name: getattr(row, name) for name in ORDER_FIELDS},
        lines=[
            OrderLineCanonical(
                position=line.position,
                product_code=line.product_code,
                product=line.product,
                description=line.description,
                quantity=line.quantity,
                unit=line.unit,
                unit_price=line.unit_price,
                total=line.total,
            )
            for line in row.lines
        ],
    )


def order_record(row: PurchaseOrder) -> dict[str, Any]:
    return asdict(order_from_row(row))


# =============================================================================
# Records -> canonical
# =============================================================================


def _datetime(value: Any) -> datetime | None:
    return parse_date(value).value


def _mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SyncFormatError(f"{what} must be an object, got {type(value).__name__}")
    return value


def tender_from_record(data: dict[str, Any]) -> TenderCanonical:
    code = normalize_code(data.get("code"))
    if not code:
        raise SyncFormatError("tender without a code")
    return TenderCanonical(
        code=code,
        name=data.get("name"),
        status=data.get("status") or TenderCanonical.status,
        status_code=parse_int(data.get("status_code")),
        closing_date=_datetime(data.get("closing_date")),
        issuing_org=data.get("issuing_org"),
        estimated_amount=parse_amount(data.get("estimated_amount")),
    )


def order_from_record(data: dict[str, Any], tender_code: str) -> OrderCanonical:
    """Canonical order of a record, filed under ``tender_code`` whatever it says."""
    code = normalize_code(data.get("code"))
    if not code:
        raise SyncFormatError(f"order of {tender_code} without a code")

    lines = [
        OrderLineCanonical(
            position=parse_int(line.get("position")) or index,
            product_code=line.get("product_code"),
            product=line.get("product"),
            description=line.get("description"),
            quantity=parse_amount(line.get("quantity")),
            unit=line.get("unit"),
            unit_price=parse_amount(line.get("unit_price")),
            total=parse_amount(line.get("total")),
        )
        for index, line in enumerate(data.get("lines") or [], start=1)
        if isinstance(line, dict)
    ]

    return OrderCanonical(
        code=code,
        tender_code=tender_code,
        name=data.get("name"),
        status=data.get("status") or OrderCanonical.status,
        status_code=parse_int(data.get("status_code")),
        supplier_name=data.get("supplier_name") or "",
        supplier_tax_id=data.get("supplier_tax_id") or "",
        amount=parse_amount(data.get("amount")),
        currency=data.get("currency") or "CLP",
        sent_date=_datetime(data.get("sent_date")),
        accepted_date=_datetime(data.get("accepted_date")),
        lines=lines,
    )


@dataclass
class ImportEntry:
    """One tender of an import document, parsed."""

    tender: TenderCanonical
    orders: list[OrderCanonical]
    institution_id: int | None = None
    line: str | None = None
    total_amount: float | None = None
    due_date: datetime | None = None

    @property
    def has_contract_data(self) -> bool:
        return self.total_amount is not None or self.due_date is not None


def read_document(document: Any) -> list[ImportEntry]:
    """Parse a whole import document before anything is written.

    Raises:
        SyncFormatError: If the document or any entry is malformed
    """
    entries = _mapping(document, "import document").get("tenders")
    if not isinstance(entries, list):
        raise SyncFormatError("'tenders' must be a list")

    parsed = []
    for entry in entries:
        entry = _mapping(entry, "tender entry")
        data = _mapping(entry.get("tender"), "'tender'")
        tender = tender_from_record(data)

        orders = entry.get("orders") or []
        if not isinstance(orders, list):
            raise SyncFormatError(f"'orders' of {tender.code} must be a list")

        total_amount = data.get("total_amount")
        parsed.append(
            ImportEntry(
                tender=tender,
                orders=[order_from_record(_mapping(o, "order"), tender.code) for o in orders],
                institution_id=parse_int(data.get("institution_id")),
                line=data.get("line") or None,
                total_amount=None if total_amount is None else parse_amount(total_amount),
                due_date=_datetime(data.get("due_date")),
            )
        )
    return parsed
