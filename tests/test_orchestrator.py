"""Tests for the reconciliation engine: targeted and daily discovery."""
import asyncio
from datetime import date

import httpx
import pytest
from sqlalchemy import func, select

from tenderwatch.core.client import ApiError
from tenderwatch.core.config import PushConfig, RunStatus
from tenderwatch.core.notify import NEW_ORDERS, NEW_ORDERS_PUSH
from tenderwatch.core.orchestrator import (
    ReconciliationEngine,
    RunStats,
    ScanInProgressError,
    persist_orders,
)
from tenderwatch.core.normalize import OrderCanonical
from tenderwatch.core.scheduler import DAILY_SCAN_LOCK, LockManager, tender_scan_lock
from tenderwatch.persistence.models import Notification, OrderLine, PurchaseOrder
from tenderwatch.persistence.repo import (
    NotificationRepository,
    OrderRepository,
    PushTokenRepository,
    RunRepository,
)

from conftest import SUPPLIERS, FakePushGateway, track_tender

TODAY = date(2024, 6, 20)
TENDER_A = "1057480-12-LE24"
TENDER_B = "2000-5-LP24"


def make_engine(scope, client, pacer, gateway=None, **kwargs):
    return ReconciliationEngine(
        scope,
        client,
        SUPPLIERS,
        pacer=pacer,
        push_config=PushConfig() if gateway else None,
        push_transport=httpx.MockTransport(gateway.handler) if gateway else None,
        today=lambda: TODAY,
        **kwargs,
    )


def count(scope, model) -> int:
    with scope() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


# ── Targeted discovery ───────────────────────────────────────────────

def test_discover_orders_persists_only_target_orders(scope, api, make_client, pacer):
    api.add_order("OC-1", TENDER_A, SUPPLIERS[0], date(2024, 6, 1), amount=1500)
    api.add_order("OC-2", TENDER_B, SUPPLIERS[0], date(2024, 6, 1))
    api.add_order("OC-3", TENDER_A, SUPPLIERS[1], date(2024, 1, 15), amount=500)
    engine = make_engine(scope, make_client(), pacer)

    written = asyncio.run(engine.discover_orders(TENDER_A.lower()))

    assert sorted(o.code for o in written) == ["OC-1", "OC-3"]
    with scope() as session:
        stored = OrderRepository(session).list_for_tender(TENDER_A)
        assert sorted(o.code for o in stored) == ["OC-1", "OC-3"]
        assert OrderRepository(session).get("OC-2") is None
        run = RunRepository(session).get_recent(limit=1)[0]
        assert run.status == RunStatus.COMPLETED.value
        assert run.tender_code == TENDER_A
        assert run.orders_new == 2


def test_discover_orders_is_idempotent(scope, api, make_client, pacer):
    api.add_order("OC-1", TENDER_A, SUPPLIERS[0], date(2024, 6, 1), amount=1500)
    engine = make_engine(scope, make_client(), pacer)

    asyncio.run(engine.discover_orders(TENDER_A))
    api.orders["OC-1"]["CodigoEstado"] = 9
    asyncio.run(engine.discover_orders(TENDER_A))

    assert count(scope, PurchaseOrder) == 1
    assert count(scope, OrderLine) == 1
    with scope() as session:
        assert OrderRepository(session).get("OC-1").status == "Cancelled"
        latest = RunRepository(session).get_recent(limit=1)[0]
        assert latest.orders_new == 0
        assert latest.orders_updated == 1


def test_discover_orders_records_failure(scope, api, make_client, pacer):
    engine = make_engine(scope, make_client(max_attempts=1), pacer)
    for supplier in SUPPLIERS:
        for day in (1, 15):
            for month in range(1, 7):
                api.fail_listing(supplier, date(2024, month, day))

    with pytest.raises(ApiError):
        asyncio.run(engine.discover_orders(TENDER_A))

    with scope() as session:
        run = RunRepository(session).get_recent(limit=1)[0]
        assert run.status == RunStatus.FAILED.value
        assert run.error_message
        assert LockManager(session).is_locked(tender_scan_lock(TENDER_A)) is False


def test_overlapping_targeted_scan_rejected(scope, make_client, pacer):
    with scope() as session:
        LockManager(session).acquire(tender_scan_lock(TENDER_A), "other-process")
    engine = make_engine(scope, make_client(), pacer)

    with pytest.raises(ScanInProgressError):
        asyncio.run(engine.discover_orders(TENDER_A))

    with scope() as session:
        run = RunRepository(session).get_recent(limit=1)[0]
        assert run.status == RunStatus.SKIPPED.value


# ── Daily discovery ──────────────────────────────────────────────────

def register_tokens(scope, n: int) -> None:
    with scope() as session:
        repo = PushTokenRepository(session)
        for i in range(n):
            repo.register(i + 1, f"ExponentPushToken[device-{i}]", "android")


def test_daily_scan_stores_notifies_and_pushes(scope, api, make_client, pacer):
    track_tender(scope, TENDER_A)
    track_tender(scope, TENDER_B, user_id=2)
    register_tokens(scope, 3)
    api.add_order("OC-1", TENDER_A, SUPPLIERS[0], TODAY, amount=10)
    api.add_order("OC-2", TENDER_A, SUPPLIERS[1], date(2024, 6, 19), amount=15)
    api.add_order("OC-3", TENDER_B, SUPPLIERS[1], TODAY, amount=5)
    api.add_order("OC-4", "9999-9-LE24", SUPPLIERS[0], TODAY, amount=99)
    gateway = FakePushGateway()
    engine = make_engine(scope, make_client(), pacer, gateway)

    new_orders = asyncio.run(engine.scan_daily_new_orders())

    assert sorted(o.code for o in new_orders) == ["OC-1", "OC-2", "OC-3"]
    with scope() as session:
        notifications = NotificationRepository(session).list()
        per_tender = sorted(
            (n.tender_code, n.order_count, n.message) for n in notifications if n.type == NEW_ORDERS
        )
        assert per_tender == [
            (TENDER_A, 2, "Total amount: $25"),
            (TENDER_B, 1, "Total amount: $5"),
        ]
        summary = [n for n in notifications if n.type == NEW_ORDERS_PUSH]
        assert len(summary) == 1
        assert summary[0].title == "3 new purchase orders detected"

        run = RunRepository(session).get_recent(limit=1)[0]
        assert run.status == RunStatus.COMPLETED.value
        assert run.orders_new == 3
        assert run.notifications_created == 2
        assert run.push_sent == 3

    assert len(gateway.chunks) == 1
    assert gateway.chunks[0][0]["data"] == {"type": NEW_ORDERS_PUSH, "count": 3, "amount": 30.0}


def test_daily_scan_ignores_already_stored_orders(scope, api, make_client, pacer):
    track_tender(scope, TENDER_A)
    api.add_order("OC-1", TENDER_A, SUPPLIERS[0], TODAY, amount=10)
    engine = make_engine(scope, make_client(), pacer)

    first = asyncio.run(engine.scan_daily_new_orders())
    notifications_after_first = count(scope, Notification)
    second = asyncio.run(engine.scan_daily_new_orders())

    assert [o.code for o in first] == ["OC-1"]
    assert second == []
    assert count(scope, Notification) == notifications_after_first == 1
    assert api.detail_requests() == ["OC-1"]


def test_daily_scan_on_a_chosen_date(scope, api, make_client, pacer):
    track_tender(scope, TENDER_A)
    api.add_order("OC-OLD", TENDER_A, SUPPLIERS[0], date(2024, 3, 4), amount=10)
    api.add_order("OC-NOW", TENDER_A, SUPPLIERS[0], TODAY, amount=10)
    engine = make_engine(scope, make_client(), pacer)

    found = asyncio.run(engine.scan_daily_new_orders(on_date=date(2024, 3, 5)))

    assert [o.code for o in found] == ["OC-OLD"]
    assert {on for on, _ in api.listing_requests()} == {"05032024", "04032024"}


def test_daily_scan_without_tracked_tenders_calls_nothing(scope, api, make_client, pacer):
    engine = make_engine(scope, make_client(), pacer)

    assert asyncio.run(engine.scan_daily_new_orders()) == []
    assert api.requests == []
    with scope() as session:
        assert RunRepository(session).get_recent(limit=1)[0].status == RunStatus.COMPLETED.value


def test_overlapping_daily_scan_rejected(scope, make_client, pacer):
    with scope() as session:
        LockManager(session).acquire(DAILY_SCAN_LOCK, "other-process")
    engine = make_engine(scope, make_client(), pacer)

    with pytest.raises(ScanInProgressError) as exc_info:
        asyncio.run(engine.scan_daily_new_orders())

    assert exc_info.value.holder_id == "other-process"
    with scope() as session:
        statuses = [r.status for r in RunRepository(session).get_recent()]
    assert statuses == [RunStatus.SKIPPED.value]


def test_expired_lock_is_taken_over(scope, make_client, pacer):
    with scope() as session:
        LockManager(session).acquire(DAILY_SCAN_LOCK, "crashed-process", ttl_minutes=-1)
    engine = make_engine(scope, make_client(), pacer)

    assert asyncio.run(engine.scan_daily_new_orders()) == []
    with scope() as session:
        assert not LockManager(session).is_locked(DAILY_SCAN_LOCK)


# ── Persistence ──────────────────────────────────────────────────────

def test_persist_failure_is_counted_and_skipped(scope):
    stats = RunStats()
    orders = [
        OrderCanonical(code="OC-1", tender_code=TENDER_A, amount=10),
        OrderCanonical(code="OC-2", tender_code=""),
        OrderCanonical(code="OC-3", tender_code=TENDER_A, amount=20),
    ]

    written = persist_orders(scope, orders, stats)

    assert [o.code for o in written] == ["OC-1", "OC-3"]
    assert stats.persist_failures == 1
    assert stats.orders_new == 2
    assert count(scope, PurchaseOrder) == 2


def test_persist_skip_existing_leaves_rows_untouched(scope):
    persist_orders(scope, [OrderCanonical(code="OC-1", tender_code=TENDER_A, amount=10)], RunStats())
    stats = RunStats()

    written = persist_orders(
        scope,
        [OrderCanonical(code="OC-1", tender_code=TENDER_A, amount=999)],
        stats,
        skip_existing=True,
    )

    assert written == []
    with scope() as session:
        assert OrderRepository(session).get("OC-1").amount == 10
