"""Tests for date sampling, tender matching and the order scanner."""
import asyncio
from datetime import date

import pytest

from tenderwatch.core.client import ApiError
from tenderwatch.core.discovery import (
    OrderScanner,
    TenderMatcher,
    code_prefix,
    daily_dates,
    sample_dates,
)
from tenderwatch.core.normalize import OrderCanonical, OrderSummary

from conftest import SUPPLIERS

TODAY = date(2024, 6, 20)


# ── Date windows ─────────────────────────────────────────────────────

def test_sample_dates_cover_window_oldest_first():
    dates = sample_dates(date(2024, 3, 10), months=3)

    assert dates == [
        date(2024, 1, 1),
        date(2024, 1, 15),
        date(2024, 2, 1),
        date(2024, 2, 15),
        date(2024, 3, 1),
    ]


def test_sample_dates_cross_year_boundary():
    dates = sample_dates(date(2024, 1, 20), months=2)

    assert dates[0] == date(2023, 12, 1)
    assert dates[-1] == date(2024, 1, 15)
    assert len(dates) == 4


def test_default_window_is_six_months_twice_a_month():
    assert len(sample_dates(TODAY)) == 12


def test_daily_dates_are_today_and_yesterday():
    assert daily_dates(date(2024, 3, 1)) == [date(2024, 3, 1), date(2024, 2, 29)]


# ── Matcher ──────────────────────────────────────────────────────────

class TestTenderMatcher:
    def test_code_prefix(self):
        assert code_prefix("1234-56-LE24") == "1234-56"
        assert code_prefix("NOSEPARATOR") == ""

    def test_authoritative_match_is_case_insensitive(self):
        summary = OrderSummary(code="A-1", tender_code=" 1234-56-le24 ")
        assert TenderMatcher.is_authoritative_match(summary, "1234-56-LE24")

    def test_missing_tender_code_never_matches(self):
        summary = OrderSummary(code="A-1", tender_code="")
        assert not TenderMatcher.is_authoritative_match(summary, "")
        assert not TenderMatcher.is_authoritative_match(summary, "1234-56-LE24")

    def test_full_code_beats_prefix(self):
        matcher = TenderMatcher(["1234-56-LE24", "1234-56-LP24"])
        assert matcher.match_by_name("Compra según licitación 1234-56-lp24") == "1234-56-LP24"

    def test_prefix_tie_goes_to_smallest_code(self):
        matcher = TenderMatcher(["1234-56-LP24", "1234-56-LE24"])
        assert matcher.match_by_name("Convenio 1234-56 junio") == "1234-56-LE24"

    def test_longer_prefix_wins(self):
        matcher = TenderMatcher(["99-1-LE24", "12399-1-LE24"])
        assert matcher.match_by_name("ref 12399-1") == "12399-1-LE24"

    def test_no_match(self):
        matcher = TenderMatcher(["1234-56-LE24"])
        assert matcher.match_by_name("Compra directa") is None
        assert matcher.match_by_name(None) is None

    def test_resolve_uses_detail_code_when_tracked(self):
        matcher = TenderMatcher(["1234-56-LE24"])
        assert matcher.resolve(OrderCanonical(code="A-1", tender_code="1234-56-le24")) == "1234-56-LE24"
        assert matcher.resolve(OrderCanonical(code="A-2", tender_code="9999-1-LE24")) is None
        assert matcher.resolve(OrderCanonical(code="A-3")) is None


# ── Targeted scan ────────────────────────────────────────────────────

TARGET = "1057480-12-LE24"
OTHER = "2000-5-LP24"


def test_targeted_scan_keeps_only_reported_matches(api, make_client, pacer):
    api.add_order("OC-1", TARGET, SUPPLIERS[0], date(2024, 6, 1))
    api.add_order("OC-2", OTHER, SUPPLIERS[0], date(2024, 6, 1))
    api.add_order("OC-3", TARGET, SUPPLIERS[1], date(2024, 2, 15))
    api.add_order("OC-4", TARGET, SUPPLIERS[1], date(2024, 3, 1), listed_tender_code="")
    scanner = OrderScanner(make_client(), SUPPLIERS, pacer)

    result = asyncio.run(scanner.scan_for_tender(TARGET, TODAY))

    assert sorted(o.code for o in result.orders) == ["OC-1", "OC-3"]
    assert all(o.tender_code == TARGET for o in result.orders)
    assert sorted(api.detail_requests()) == ["OC-1", "OC-3"]
    assert result.stats.pairs_scanned == 24
    assert result.stats.candidates_found == 2


def test_targeted_scan_fetches_each_detail_once(api, make_client, pacer):
    api.add_order("OC-1", TARGET, SUPPLIERS[0], date(2024, 6, 1))
    api.add_order("OC-1", TARGET, SUPPLIERS[0], date(2024, 6, 15))
    scanner = OrderScanner(make_client(), SUPPLIERS, pacer)

    result = asyncio.run(scanner.scan_for_tender(TARGET, TODAY))

    assert [o.code for o in result.orders] == ["OC-1"]
    assert api.detail_requests() == ["OC-1"]


def test_targeted_scan_continues_past_failed_pairs(api, make_client, pacer):
    api.add_order("OC-1", TARGET, SUPPLIERS[0], date(2024, 6, 1))
    api.fail_listing(SUPPLIERS[1], date(2024, 6, 1))
    scanner = OrderScanner(make_client(max_attempts=1), SUPPLIERS, pacer)

    result = asyncio.run(scanner.scan_for_tender(TARGET, TODAY))

    assert [o.code for o in result.orders] == ["OC-1"]
    assert result.stats.pairs_failed == 1


def test_targeted_scan_raises_when_every_pair_fails(api, make_client, pacer):
    scanner = OrderScanner(make_client(max_attempts=1), SUPPLIERS[:1], pacer, window_months=1, sample_days=[1])
    api.fail_listing(SUPPLIERS[0], date(2024, 6, 1))

    with pytest.raises(ApiError):
        asyncio.run(scanner.scan_for_tender(TARGET, TODAY))


def test_scanner_paces_every_call(api, make_client, fake_sleep):
    from tenderwatch.core.fetch import RequestPacer

    api.add_order("OC-1", TARGET, SUPPLIERS[0], date(2024, 6, 1))
    pacer = RequestPacer(sleep=fake_sleep, clock=lambda: 0.0)
    scanner = OrderScanner(make_client(), SUPPLIERS[:1], pacer, window_months=1, sample_days=[1])

    asyncio.run(scanner.scan_for_tender(TARGET, TODAY))

    # one listing then one detail, each preceded by its full gap
    assert fake_sleep.calls == [1.0, 0.5]


# ── Daily scan ───────────────────────────────────────────────────────

def test_daily_scan_matches_by_name_then_detail(api, make_client, pacer):
    yesterday = date(2024, 6, 19)
    api.add_order("OC-NAME", "", SUPPLIERS[0], TODAY, name=f"Compra licitación {TARGET}")
    api.add_order("OC-DETAIL", OTHER, SUPPLIERS[1], yesterday, listed_tender_code="")
    api.add_order("OC-UNTRACKED", "7777-1-LE24", SUPPLIERS[1], TODAY, listed_tender_code="")
    scanner = OrderScanner(make_client(), SUPPLIERS, pacer)

    result = asyncio.run(scanner.scan_recent(TenderMatcher([TARGET, OTHER]), TODAY))

    by_code = {o.code: o.tender_code for o in result.orders}
    assert by_code == {"OC-NAME": TARGET, "OC-DETAIL": OTHER}
    assert result.stats.unmatched == 1


def test_daily_scan_skips_known_orders_before_detail(api, make_client, pacer):
    api.add_order("OC-OLD", TARGET, SUPPLIERS[0], TODAY)
    api.add_order("OC-NEW", TARGET, SUPPLIERS[0], TODAY)
    scanner = OrderScanner(make_client(), SUPPLIERS, pacer)

    result = asyncio.run(
        scanner.scan_recent(TenderMatcher([TARGET]), TODAY, order_exists=lambda code: code == "OC-OLD")
    )

    assert [o.code for o in result.orders] == ["OC-NEW"]
    assert api.detail_requests() == ["OC-NEW"]
    assert result.stats.skipped_existing == 1
