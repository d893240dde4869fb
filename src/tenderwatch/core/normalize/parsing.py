"""
Parsing utilities for normalizing API payload values.

Handles the date, amount and code formats returned by the procurement API.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

import dateparser


# =============================================================================
# Date Parsing
# =============================================================================


@dataclass
class ParsedDate:
    """Result of parsing a date string."""

    value: datetime | None
    original: str
    format_detected: str | None = None


_ISO_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})(?:[T ](\d{2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?)?"
)


def parse_date(value: str | datetime | date | None) -> ParsedDate:
    """Parse a date/datetime from an API field.

    The API returns ISO 8601 timestamps; anything else goes through
    dateparser with day-first ordering, as used by the Chilean portal.
    """
    if value is None:
        return ParsedDate(value=None, original="")

    if isinstance(value, datetime):
        return ParsedDate(value=value, original=value.isoformat(), format_detected="datetime")

    if isinstance(value, date):
        return ParsedDate(
            value=datetime.combine(value, time.min),
            original=value.isoformat(),
            format_detected="date",
        )

    original = str(value).strip()
    if not original:
        return ParsedDate(value=None, original=original)

    match = _ISO_PATTERN.match(original)
    if match:
        groups = [int(g) if g else 0 for g in match.groups()]
        try:
            return ParsedDate(
                value=datetime(*groups),
                original=original,
                format_detected="iso8601",
            )
        except ValueError:
            pass

    parsed = dateparser.parse(
        original,
        settings={
            "DATE_ORDER": "DMY",
            "RETURN_AS_TIMEZONE_AWARE": False,
            "PREFER_DAY_OF_MONTH": "first",
        },
    )
    if parsed:
        return ParsedDate(value=parsed, original=original, format_detected="dateparser")

    return ParsedDate(value=None, original=original)


def format_query_date(value: date) -> str:
    """Format a date the way the order listing expects it (DDMMYYYY)."""
    return value.strftime("%d%m%Y")


# =============================================================================
# Amount Parsing
# =============================================================================


# A lone dot followed by exactly three digits groups thousands ("12.500").
_THOUSANDS_ONLY = re.compile(r"^-?\d{1,3}\.\d{3}$")


def parse_amount(value: Any) -> float:
    """Parse a monetary amount, returning 0.0 when absent or unparseable.

    Numbers pass through; strings may use Chilean formatting
    (``1.234.567,89``, ``12.500``) or plain decimals (``12.5``).
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)

    text = re.sub(r"[^\d,.\-]", "", str(value))
    if not text:
        return 0.0

    last_comma = text.rfind(",")
    last_period = text.rfind(".")
    if last_comma > last_period:
        text = text.replace(".", "").replace(",", ".")
    elif text.count(".") > 1 or _THOUSANDS_ONLY.match(text):
        text = text.replace(".", "")
    else:
        text = text.replace(",", "")

    try:
        return float(Decimal(text))
    except InvalidOperation:
        return 0.0


def parse_int(value: Any) -> int | None:
    """Parse an integer code, returning None when absent or invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


# =============================================================================
# Utility Functions
# =============================================================================


def normalize_whitespace(text: str | None) -> str:
    """Normalize whitespace in text."""
    if text is None:
        return ""
    return " ".join(str(text).split())


def normalize_code(code: str | None) -> str:
    """Canonical form of an external tender/order code."""
    return normalize_whitespace(code).upper()
