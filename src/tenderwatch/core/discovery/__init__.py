"""Order discovery - supplier/date scanning and tender matching."""

from .matcher import TenderMatcher, code_prefix
from .scanner import (
    OrderScanner,
    ScanResult,
    ScanStats,
    daily_dates,
    sample_dates,
)

__all__ = [
    "TenderMatcher",
    "code_prefix",
    "OrderScanner",
    "ScanResult",
    "ScanStats",
    "daily_dates",
    "sample_dates",
]
