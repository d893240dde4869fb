"""
Order discovery scanner.

The procurement API cannot list orders by tender, so orders are
discovered by listing every allow-listed supplier's orders on a set of
dates and filtering the results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from tenderwatch.core.client import ApiError
from tenderwatch.core.fetch import DETAIL, LIST, RequestPacer
from tenderwatch.core.logging import get_contextual_logger
from tenderwatch.core.normalize import OrderCanonical, OrderSummary

from .matcher import TenderMatcher

if TYPE_CHECKING:
    from tenderwatch.core.client import ProcurementClient
    from tenderwatch.core.config import SupplierConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Date windows
# =============================================================================


def _shift_month(year: int, month: int, back: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - back
    return index // 12, index % 12 + 1


def sample_dates(today: date, months: int = 6, days: Sequence[int] = (1, 15)) -> list[date]:
    """Dates sampled by targeted discovery, oldest first.

    Covers the current month and the ``months - 1`` before it, on each of
    ``days``. Dates after ``today`` are excluded.
    """
    dates = []
    for back in range(months - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, back)
        for day in sorted(days):
            candidate = date(year, month, day)
            if candidate <= today:
                dates.append(candidate)
    return dates


def daily_dates(today: date) -> list[date]:
    """Dates scanned by daily discovery: today and yesterday."""
    return [today, today - timedelta(days=1)]


# =============================================================================
# Scan results
# =============================================================================


@dataclass
class ScanStats:
    """Counters for one scan."""

    pairs_scanned: int = 0
    pairs_failed: int = 0
    candidates_found: int = 0
    details_fetched: int = 0
    details_failed: int = 0
    skipped_existing: int = 0
    unmatched: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "pairs_scanned": self.pairs_scanned,
            "pairs_failed": self.pairs_failed,
            "candidates_found": self.candidates_found,
            "details_fetched": self.details_fetched,
            "details_failed": self.details_failed,
            "skipped_existing": self.skipped_existing,
            "unmatched": self.unmatched,
        }


@dataclass
class ScanResult:
    """Orders discovered by a scan, each carrying its resolved tender code."""

    orders: list[OrderCanonical] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)


# =============================================================================
# Scanner
# =============================================================================


class OrderScanner:
    """Enumerates supplier x date pairs and collects candidate orders.

    All API calls go through the pacer, so they are issued one at a time
    with the configured minimum gap before each.
    """

    def __init__(
        self,
        client: "ProcurementClient",
        suppliers: Iterable["SupplierConfig"],
        pacer: RequestPacer | None = None,
        window_months: int = 6,
        sample_days: Sequence[int] = (1, 15),
    ):
        self.client = client
        self.suppliers = list(suppliers)
        self.pacer = pacer or RequestPacer()
        self.window_months = window_months
        self.sample_days = tuple(sample_days)
        self._last_error: ApiError | None = None

    async def _list_pair(
        self,
        supplier: "SupplierConfig",
        on_date: date,
        stats: ScanStats,
    ) -> list[OrderSummary]:
        """List one (supplier, date) pair; failures are logged and counted."""
        log = get_contextual_logger("discovery.scanner", supplier=supplier.name)
        stats.pairs_scanned += 1
        try:
            async with self.pacer.slot(LIST):
                summaries = await self.client.list_orders(on_date, supplier.code)
        except ApiError as e:
            stats.pairs_failed += 1
            log.warning(f"Listing failed for {on_date.isoformat()}: {e}")
            self._last_error = e
            return []

        log.debug(f"{len(summaries)} orders on {on_date.isoformat()}")
        return summaries

    async def _fetch_detail(self, code: str, stats: ScanStats) -> OrderCanonical | None:
        async with self.pacer.slot(DETAIL):
            detail = await self.client.find_order(code)
        stats.details_fetched += 1
        return detail

    async def scan_for_tender(self, tender_code: str, today: date | None = None) -> ScanResult:
        """Targeted discovery for one tender.

        Keeps only orders whose reported tender code equals ``tender_code``
        and fetches the detail of each one once.

        Raises:
            ApiError: A detail fetch failed after retries, or every listing
                call failed
        """
        today = today or date.today()
        result = ScanResult()
        stats = result.stats
        seen: set[str] = set()
        self._last_error = None

        dates = sample_dates(today, self.window_months, self.sample_days)
        log = get_contextual_logger("discovery.scanner", tender=tender_code)
        log.info(f"Targeted scan over {len(self.suppliers)} suppliers x {len(dates)} dates")

        for supplier in self.suppliers:
            for on_date in dates:
                for summary in await self._list_pair(supplier, on_date, stats):
                    if not TenderMatcher.is_authoritative_match(summary, tender_code):
                        continue
                    if summary.code in seen:
                        continue
                    seen.add(summary.code)
                    stats.candidates_found += 1

                    detail = await self._fetch_detail(summary.code, stats)
                    if detail is None:
                        continue
                    detail.tender_code = summary.tender_code
                    result.orders.append(detail)

        if stats.pairs_scanned and stats.pairs_failed == stats.pairs_scanned and self._last_error:
            raise self._last_error

        log.info(
            f"Targeted scan found {len(result.orders)} orders "
            f"({stats.pairs_failed}/{stats.pairs_scanned} pairs failed)"
        )
        return result

    async def scan_recent(
        self,
        matcher: TenderMatcher,
        today: date | None = None,
        order_exists: Callable[[str], bool] | None = None,
    ) -> ScanResult:
        """Daily discovery of orders issued today or yesterday.

        Orders for which ``order_exists`` is true are skipped before any
        detail fetch. Others are matched by name, or else by the tender code
        on their detail; orders of untracked tenders are dropped.
        """
        today = today or date.today()
        result = ScanResult()
        stats = result.stats
        seen: set[str] = set()
        self._last_error = None

        dates = daily_dates(today)
        logger.info(
            "Daily scan over %d suppliers x %d dates, %d tracked tenders",
            len(self.suppliers),
            len(dates),
            len(matcher.known_codes),
        )

        for supplier in self.suppliers:
            for on_date in dates:
                for summary in await self._list_pair(supplier, on_date, stats):
                    if not summary.code or summary.code in seen:
                        continue
                    seen.add(summary.code)

                    if order_exists is not None and order_exists(summary.code):
                        stats.skipped_existing += 1
                        continue

                    tender_code = matcher.match_by_name(summary.name)

                    try:
                        detail = await self._fetch_detail(summary.code, stats)
                    except ApiError as e:
                        stats.details_failed += 1
                        logger.warning("Detail fetch failed for %s: %s", summary.code, e)
                        continue
                    if detail is None:
                        continue

                    if tender_code is None:
                        tender_code = matcher.resolve(detail)
                    if tender_code is None:
                        stats.unmatched += 1
                        continue

                    detail.tender_code = tender_code
                    stats.candidates_found += 1
                    result.orders.append(detail)

        logger.info(
            "Daily scan found %d new orders (%d pairs failed, %d already stored)",
            len(result.orders),
            stats.pairs_failed,
            stats.skipped_existing,
        )
        return result
