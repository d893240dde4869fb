"""Normalization and canonicalization of API payloads."""

from .parsing import (
    ParsedDate,
    parse_date,
    parse_amount,
    parse_int,
    format_query_date,
    normalize_whitespace,
    normalize_code,
)
from .canonical import (
    OrderStatus,
    TenderStatus,
    TenderCanonical,
    OrderCanonical,
    OrderLineCanonical,
    OrderSummary,
    normalize_tender,
    normalize_order,
    normalize_order_summary,
)

__all__ = [
    # Parsing
    "ParsedDate",
    "parse_date",
    "parse_amount",
    "parse_int",
    "format_query_date",
    "normalize_whitespace",
    "normalize_code",
    # Canonical
    "OrderStatus",
    "TenderStatus",
    "TenderCanonical",
    "OrderCanonical",
    "OrderLineCanonical",
    "OrderSummary",
    "normalize_tender",
    "normalize_order",
    "normalize_order_summary",
]
