"""
Reconciliation orchestrator.

Coordinates the discovery workflow: scan -> match -> deduplicate -> persist,
followed on the daily path by per-tender notifications and push fan-out.
Also hosts the tender tracking operations that share the same client,
pacer and store.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Iterable, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError

from tenderwatch.core.client import ApiError, ProcurementClient
from tenderwatch.core.config.models import PushConfig, RunStatus, ScanConfig, ScanMode
from tenderwatch.core.discovery import OrderScanner, ScanStats, TenderMatcher
from tenderwatch.core.fetch import LOOKUP, REFRESH, RequestPacer
from tenderwatch.core.logging import get_contextual_logger
from tenderwatch.core.normalize import OrderCanonical, normalize_code
from tenderwatch.core.notify import NotificationAggregator, PushFanoutService
from tenderwatch.core.scheduler.locks import (
    DAILY_SCAN_LOCK,
    ScanInProgressError,
    run_lock,
    tender_scan_lock,
)
from tenderwatch.persistence.models import Tender, utcnow
from tenderwatch.persistence.repo import (
    InstitutionRepository,
    NotificationRepository,
    OrderRepository,
    PushTokenRepository,
    RunRepository,
    TenderRepository,
)

from .sync import (
    ImportResult,
    order_from_row,
    order_record,
    read_document,
    tender_record,
)

if TYPE_CHECKING:
    from tenderwatch.core.config import AppConfig, SupplierConfig
    from tenderwatch.persistence.db import SessionScope


logger = logging.getLogger(__name__)


class TenderNotFoundError(Exception):
    """The tender is unknown to the procurement service or to the user."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Tender not found: {code}")


class InstitutionNotFoundError(Exception):
    def __init__(self, institution_id: int):
        self.institution_id = institution_id
        super().__init__(f"Institution not found: {institution_id}")


@dataclass
class RunStats:
    """Statistics for a scan run."""

    pairs_scanned: int = 0
    pairs_failed: int = 0
    candidates_found: int = 0
    orders_new: int = 0
    orders_updated: int = 0
    persist_failures: int = 0
    notifications_created: int = 0
    push_sent: int = 0

    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def absorb(self, scan: ScanStats) -> None:
        self.pairs_scanned += scan.pairs_scanned
        self.pairs_failed += scan.pairs_failed
        self.candidates_found += scan.candidates_found

    def counters(self) -> dict[str, int]:
        """Counter columns of the ScanRun record."""
        return {
            "pairs_scanned": self.pairs_scanned,
            "pairs_failed": self.pairs_failed,
            "candidates_found": self.candidates_found,
            "orders_new": self.orders_new,
            "orders_updated": self.orders_updated,
            "persist_failures": self.persist_failures,
            "notifications_created": self.notifications_created,
            "push_sent": self.push_sent,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {**self.counters(), "duration_seconds": self.duration_seconds}


# =============================================================================
# Persistence
# =============================================================================


def persist_orders(
    scope: "SessionScope",
    orders: Iterable[OrderCanonical],
    stats: RunStats,
    skip_existing: bool = False,
) -> list[OrderCanonical]:
    """Upsert orders, each in its own savepoint.

    A failing order is logged, counted in ``persist_failures`` and skipped.

    Args:
        scope: Session scope
        orders: Orders with resolved tender codes
        stats: Counters to update
        skip_existing: Leave already stored orders untouched

    Returns:
        Orders that were written
    """
    written: list[OrderCanonical] = []

    with scope() as session:
        repo = OrderRepository(session)
        for order in orders:
            try:
                with session.begin_nested():
                    if skip_existing and repo.exists(order.code):
                        continue
                    _, created = repo.upsert(order)
            except (SQLAlchemyError, ValueError) as e:
                stats.persist_failures += 1
                stats.errors.append(f"Persist failed for {order.code}: {e}")
                logger.error("Persist failed for order %s: %s", order.code, e)
                continue

            if created:
                stats.orders_new += 1
            else:
                stats.orders_updated += 1
            written.append(order)

    return written


# =============================================================================
# Reconciliation Engine
# =============================================================================


class ReconciliationEngine:
    """Runs targeted and daily order discovery against the store.

    Coordinates:
    - Run locks and ScanRun records
    - Supplier x date scanning through the paced client
    - Tender matching and deduplication
    - Per-order persistence
    - Notifications and push fan-out after daily scans
    """

    def __init__(
        self,
        scope: "SessionScope",
        client: ProcurementClient,
        suppliers: Iterable["SupplierConfig"],
        *,
        pacer: RequestPacer | None = None,
        scan_config: ScanConfig | None = None,
        push_config: PushConfig | None = None,
        push_transport: httpx.AsyncBaseTransport | None = None,
        lock_ttl_minutes: int = 180,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the engine.

        Args:
            scope: Session scope over the store
            client: Procurement API client
            suppliers: Allow-listed suppliers
            pacer: Shared request pacer
            scan_config: Date windows and pacing
            push_config: Push gateway settings (None disables push)
            push_transport: Custom httpx transport for the gateway (tests)
            lock_ttl_minutes: Lifetime of run locks
            today: Clock for the scanned dates
        """
        scan_config = scan_config or ScanConfig()
        self.scope = scope
        self.client = client
        self.pacer = pacer or RequestPacer.from_config(scan_config)
        self.scanner = OrderScanner(
            client,
            suppliers,
            self.pacer,
            window_months=scan_config.window_months,
            sample_days=scan_config.sample_days,
        )
        self.push_config = push_config
        self.push_transport = push_transport
        self.lock_ttl_minutes = lock_ttl_minutes
        self._today = today

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        scope: "SessionScope",
        client: ProcurementClient,
        **kwargs: Any,
    ) -> "ReconciliationEngine":
        return cls(
            scope,
            client,
            config.suppliers,
            scan_config=config.scan,
            push_config=config.push if config.push.enabled else None,
            lock_ttl_minutes=config.scheduler.lock_ttl_minutes,
            **kwargs,
        )

    # =========================================================================
    # Run records
    # =========================================================================

    def _start_run(self, mode: ScanMode, tender_code: str | None = None) -> int:
        with self.scope() as session:
            return RunRepository(session).create(mode.value, tender_code).id

    def _finish_run(
        self,
        run_id: int,
        stats: RunStats,
        status: RunStatus,
        error_message: str | None = None,
    ) -> None:
        stats.finished_at = utcnow()
        with self.scope() as session:
            RunRepository(session).complete(
                run_id,
                status=status.value,
                error_message=error_message,
                **stats.counters(),
            )

    def _record_skipped(self, mode: ScanMode, tender_code: str | None, error: ScanInProgressError) -> None:
        with self.scope() as session:
            run = RunRepository(session).create(mode.value, tender_code, status=RunStatus.SKIPPED.value)
            RunRepository(session).complete(run.id, status=RunStatus.SKIPPED.value, error_message=str(error))

    def _order_exists(self, code: str) -> bool:
        with self.scope() as session:
            return OrderRepository(session).exists(code)

    # =========================================================================
    # Targeted discovery
    # =========================================================================

    async def discover_orders(self, tender_code: str) -> list[OrderCanonical]:
        """Find and store every order of one tender.

        Re-running is idempotent: each order is upserted by code.

        Returns:
            Orders written to the store

        Raises:
            ScanInProgressError: A scan for this tender is already running
            ApiError: The client failed after retries
        """
        code = normalize_code(tender_code)
        log = get_contextual_logger("orchestrator", tender=code)

        try:
            with run_lock(self.scope, tender_scan_lock(code), self.lock_ttl_minutes):
                run_id = self._start_run(ScanMode.TARGETED, code)
                log.with_context(run_id=run_id).info("Targeted discovery started")
                return await self._run_targeted(run_id, code)
        except ScanInProgressError as e:
            log.warning(str(e))
            self._record_skipped(ScanMode.TARGETED, code, e)
            raise

    async def _run_targeted(self, run_id: int, code: str) -> list[OrderCanonical]:
        stats = RunStats()
        try:
            result = await self.scanner.scan_for_tender(code, self._today())
            stats.absorb(result.stats)
            written = persist_orders(self.scope, result.orders, stats)
        except asyncio.CancelledError:
            self._finish_run(run_id, stats, RunStatus.FAILED, "cancelled")
            raise
        except Exception as e:
            self._finish_run(run_id, stats, RunStatus.FAILED, str(e) or type(e).__name__)
            raise

        self._finish_run(run_id, stats, RunStatus.COMPLETED)
        logger.info(
            "Targeted discovery for %s: %d new, %d updated, %d failed",
            code,
            stats.orders_new,
            stats.orders_updated,
            stats.persist_failures,
        )
        return written

    # =========================================================================
    # Daily discovery
    # =========================================================================

    async def scan_daily_new_orders(self, on_date: date | None = None) -> list[OrderCanonical]:
        """Find orders issued today or yesterday for any tracked tender.

        With ``on_date`` the window is that date and the day before it
        instead, for catching up on a missed day.

        Already stored orders are skipped. New orders get one notification
        per tender and a push to every device.

        Returns:
            Newly stored orders

        Raises:
            ScanInProgressError: A daily scan is already running
        """
        try:
            with run_lock(self.scope, DAILY_SCAN_LOCK, self.lock_ttl_minutes):
                run_id = self._start_run(ScanMode.DAILY)
                return await self._run_daily(run_id, on_date or self._today())
        except ScanInProgressError as e:
            logger.warning("Daily scan rejected: %s", e)
            self._record_skipped(ScanMode.DAILY, None, e)
            raise

    async def _run_daily(self, run_id: int, on_date: date) -> list[OrderCanonical]:
        stats = RunStats()
        log = get_contextual_logger("orchestrator", run_id=run_id, date=on_date.isoformat())

        try:
            with self.scope() as session:
                known_codes = TenderRepository(session).distinct_codes()

            if not known_codes:
                log.info("No tracked tenders, daily scan has nothing to match")
                self._finish_run(run_id, stats, RunStatus.COMPLETED)
                return []

            result = await self.scanner.scan_recent(
                TenderMatcher(known_codes),
                on_date,
                order_exists=self._order_exists,
            )
            stats.absorb(result.stats)
            new_orders = persist_orders(self.scope, result.orders, stats, skip_existing=True)

            if new_orders:
                with self.scope() as session:
                    aggregator = NotificationAggregator(NotificationRepository(session))
                    stats.notifications_created = len(aggregator.create_notifications(new_orders))

                if self.push_config is not None:
                    stats.push_sent = (await self._push(new_orders)).sent
        except asyncio.CancelledError:
            log.warning("Daily scan cancelled")
            self._finish_run(run_id, stats, RunStatus.FAILED, "cancelled")
            raise
        except Exception as e:
            log.exception("Daily scan failed")
            self._finish_run(run_id, stats, RunStatus.FAILED, str(e) or type(e).__name__)
            raise

        self._finish_run(run_id, stats, RunStatus.COMPLETED)
        log.info(
            f"Daily scan: {len(new_orders)} new orders, "
            f"{stats.notifications_created} notifications, {stats.push_sent} pushes"
        )
        return new_orders

    async def _push(self, orders: Sequence[OrderCanonical]):
        assert self.push_config is not None
        with self.scope() as session:
            service = PushFanoutService(
                PushTokenRepository(session),
                NotificationRepository(session),
                gateway_url=self.push_config.gateway_url,
                batch_size=self.push_config.batch_size,
                max_workers=self.push_config.max_workers,
                timeout=self.push_config.timeout_seconds,
                transport=self.push_transport,
            )
            return await service.notify_new_orders(orders)


# =============================================================================
# Tender Tracking
# =============================================================================


@dataclass
class RefreshResult:
    """Outcome of refreshing one tender code."""

    code: str
    ok: bool
    error: str | None = None


class TrackingService:
    """User-facing tender and order maintenance operations."""

    def __init__(
        self,
        scope: "SessionScope",
        client: ProcurementClient,
        pacer: RequestPacer | None = None,
        allowed_suppliers: Iterable[str] = (),
    ) -> None:
        self.scope = scope
        self.client = client
        self.pacer = pacer or RequestPacer()
        self.allowed_suppliers = list(allowed_suppliers)

    async def add_tender(self, code: str, user_id: int) -> Tender:
        """Start tracking a tender for a user.

        Raises:
            TenderNotFoundError: If the service does not know the code
            ApiError: The client failed after retries
        """
        async with self.pacer.slot(LOOKUP):
            tender = await self.client.find_tender(normalize_code(code))
        if tender is None:
            raise TenderNotFoundError(code)

        with self.scope() as session:
            row, created = TenderRepository(session).upsert(tender, user_id)
        logger.info("%s tender %s for user %d", "Added" if created else "Updated", row.code, user_id)
        return row

    async def refresh_tender(self, code: str) -> int:
        """Resync one code for every user tracking it.

        Returns:
            Number of rows updated

        Raises:
            TenderNotFoundError: If the service no longer knows the code
        """
        async with self.pacer.slot(REFRESH):
            tender = await self.client.find_tender(normalize_code(code))
        if tender is None:
            raise TenderNotFoundError(code)

        with self.scope() as session:
            return TenderRepository(session).update_synced(tender)

    async def refresh_all_tenders(self) -> list[RefreshResult]:
        """Resync every tracked code; one failure does not stop the rest."""
        with self.scope() as session:
            codes = TenderRepository(session).distinct_codes()

        results = []
        for code in codes:
            try:
                await self.refresh_tender(code)
            except (ApiError, TenderNotFoundError) as e:
                logger.warning("Refresh failed for %s: %s", code, e)
                results.append(RefreshResult(code, ok=False, error=str(e)))
            else:
                results.append(RefreshResult(code, ok=True))

        logger.info("Refreshed %d/%d tenders", sum(r.ok for r in results), len(results))
        return results

    async def add_orders_by_code(self, codes: Iterable[str], tender_code: str) -> list[OrderCanonical]:
        """Manually attach orders to a tender by their codes.

        Codes the service does not know, or that fail to load, are skipped.
        """
        target = normalize_code(tender_code)
        found: list[OrderCanonical] = []

        for code in dict.fromkeys(normalize_code(c) for c in codes if c and c.strip()):
            try:
                async with self.pacer.slot(LOOKUP):
                    order = await self.client.find_order(code)
            except ApiError as e:
                logger.warning("Lookup failed for order %s: %s", code, e)
                continue
            if order is None:
                logger.info("Order %s not found", code)
                continue
            order.tender_code = target
            found.append(order)

        return persist_orders(self.scope, found, RunStats())

    def remove_tender(self, code: str, user_id: int) -> bool:
        """Stop tracking a tender for a user. Its orders are kept."""
        with self.scope() as session:
            return TenderRepository(session).delete(normalize_code(code), user_id)

    def assign(
        self,
        code: str,
        user_id: int,
        institution_id: int | None = None,
        line: str | None = None,
    ) -> Tender:
        """Set the institution and product line of a user's tender.

        Raises:
            TenderNotFoundError: If the user does not track the tender
            InstitutionNotFoundError: If ``institution_id`` names no institution
        """
        with self.scope() as session:
            if institution_id is not None and InstitutionRepository(session).get(institution_id) is None:
                raise InstitutionNotFoundError(institution_id)
            tender = TenderRepository(session).assign(normalize_code(code), user_id, institution_id, line)
        if tender is None:
            raise TenderNotFoundError(code)
        return tender

    def set_contract_data(
        self,
        code: str,
        user_id: int,
        total_amount: float | None = None,
        due_date: datetime | None = None,
    ) -> Tender:
        with self.scope() as session:
            tender = TenderRepository(session).set_contract_data(
                normalize_code(code), user_id, total_amount, due_date
            )
        if tender is None:
            raise TenderNotFoundError(code)
        return tender

    def statistics(self) -> dict[str, Any]:
        """Tender count and allow-listed, non-cancelled order totals."""
        with self.scope() as session:
            tenders = TenderRepository(session).count()
            orders, amount = OrderRepository(session).totals(self.allowed_suppliers)
        return {"tenders": tenders, "orders": orders, "total_amount": amount}

    # =========================================================================
    # Order lookup
    # =========================================================================

    def stored_order(self, code: str) -> OrderCanonical | None:
        with self.scope() as session:
            row = OrderRepository(session).get(normalize_code(code))
            return order_from_row(row) if row is not None else None

    async def lookup_order(self, code: str) -> OrderCanonical | None:
        """A stored order, or else the service's copy (which is not stored).

        Raises:
            ApiError: The client failed after retries
        """
        order = self.stored_order(code)
        if order is not None:
            return order
        async with self.pacer.slot(LOOKUP):
            return await self.client.find_order(normalize_code(code))

    # =========================================================================
    # Export / import
    # =========================================================================

    def export_data(self, user_id: int) -> dict[str, Any]:
        """A user's tenders, each with its stored orders and their lines."""
        with self.scope() as session:
            orders = OrderRepository(session)
            entries = [
                {
                    "tender": tender_record(tender),
                    "orders": [order_record(row) for row in orders.list_for_tender(tender.code)],
                }
                for tender in TenderRepository(session).list_for_user(user_id)
            ]
        logger.info("Exported %d tenders for user %d", len(entries), user_id)
        return {"exported_at": utcnow(), "user_id": user_id, "tenders": entries}

    def import_data(self, document: Any, user_id: int) -> ImportResult:
        """Load an exported document into this store for a user.

        Tenders are upserted along with their line and contract data; an
        institution id is kept only if that institution exists here.
        Orders already stored are skipped, and every order is filed under
        the tender it was exported with.

        Raises:
            SyncFormatError: If the document is malformed; nothing is written
        """
        entries = read_document(document)
        result = ImportResult()

        with self.scope() as session:
            tenders = TenderRepository(session)
            institutions = InstitutionRepository(session)
            for entry in entries:
                code = entry.tender.code
                tenders.upsert(entry.tender, user_id)

                if entry.institution_id is not None or entry.line:
                    institution_id = entry.institution_id
                    if institution_id is not None and institutions.get(institution_id) is None:
                        logger.info("Tender %s: institution %d not in this store", code, institution_id)
                        institution_id = None
                    tenders.assign(code, user_id, institution_id, entry.line)

                if entry.has_contract_data:
                    tenders.set_contract_data(code, user_id, entry.total_amount, entry.due_date)
                result.tenders += 1

        orders = [order for entry in entries for order in entry.orders]
        stats = RunStats()
        written = persist_orders(self.scope, orders, stats, skip_existing=True)

        result.orders_new = len(written)
        result.orders_failed = stats.persist_failures
        result.orders_skipped = len(orders) - result.orders_new - result.orders_failed
        logger.info(
            "Imported %d tenders for user %d: %d new orders, %d skipped, %d failed",
            result.tenders,
            user_id,
            result.orders_new,
            result.orders_skipped,
            result.orders_failed,
        )
        return result


# =============================================================================
# Runtime wiring
# =============================================================================


@dataclass
class Runtime:
    """Engine, tracking service and store built from one configuration."""

    scope: "SessionScope"
    client: ProcurementClient
    engine: ReconciliationEngine
    tracking: TrackingService


@asynccontextmanager
async def open_runtime(config: "AppConfig", **engine_kwargs: Any) -> AsyncIterator[Runtime]:
    """Build the runtime for a configuration and close the client afterwards.

    Usage:
        async with open_runtime(config) as runtime:
            await runtime.engine.scan_daily_new_orders()
    """
    from tenderwatch.persistence.db import create_session_factory, init_db, session_scope

    scope = session_scope(create_session_factory(init_db(config.database.url, echo=config.database.echo)))
    pacer = RequestPacer.from_config(config.scan)

    async with ProcurementClient.from_config(config.api) as client:
        yield Runtime(
            scope=scope,
            client=client,
            engine=ReconciliationEngine.from_config(config, scope, client, pacer=pacer, **engine_kwargs),
            tracking=TrackingService(scope, client, pacer, config.supplier_names),
        )
