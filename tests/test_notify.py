"""Tests for notification grouping and push fan-out."""
import asyncio

import httpx

from tenderwatch.core.normalize import OrderCanonical
from tenderwatch.core.notify import (
    NEW_ORDERS,
    NEW_ORDERS_PUSH,
    NotificationAggregator,
    PushFanoutService,
    format_amount,
    group_by_tender,
    is_valid_token,
)
from tenderwatch.persistence.repo import NotificationRepository, PushTokenRepository

from conftest import FakePushGateway


def order(code: str, tender: str, amount: float) -> OrderCanonical:
    return OrderCanonical(code=code, tender_code=tender, amount=amount, supplier_name="Acme Medical")


ORDERS = [order("OC-1", "A", 10), order("OC-2", "B", 5), order("OC-3", "A", 15)]


# ── Aggregation ──────────────────────────────────────────────────────

def test_format_amount_uses_dot_thousands():
    assert format_amount(1234567) == "$1.234.567"
    assert format_amount(25) == "$25"


def test_group_by_tender_sorted_by_code():
    groups = group_by_tender(ORDERS)

    assert [(g.tender_code, g.count, g.total_amount) for g in groups] == [("A", 2, 25), ("B", 1, 5)]


def test_one_notification_per_tender(scope):
    with scope() as session:
        created = NotificationAggregator(NotificationRepository(session)).create_notifications(ORDERS)
        summary = [(n.type, n.tender_code, n.order_count, n.title, n.message) for n in created]

    assert summary == [
        (NEW_ORDERS, "A", 2, "2 new orders for tender A", "Total amount: $25"),
        (NEW_ORDERS, "B", 1, "1 new order for tender B", "Total amount: $5"),
    ]
    with scope() as session:
        assert NotificationRepository(session).count_unread() == 2


def test_no_orders_no_notifications(scope):
    with scope() as session:
        assert NotificationAggregator(NotificationRepository(session)).create_notifications([]) == []


# ── Push fan-out ─────────────────────────────────────────────────────

def token(i: int) -> str:
    return f"ExponentPushToken[device-{i:03d}]"


def register(scope, n: int) -> None:
    with scope() as session:
        repo = PushTokenRepository(session)
        for i in range(n):
            repo.register(i + 1, token(i))


def send(scope, gateway: FakePushGateway, orders=ORDERS, **kwargs):
    with scope() as session:
        service = PushFanoutService(
            PushTokenRepository(session),
            NotificationRepository(session),
            transport=httpx.MockTransport(gateway.handler),
            **kwargs,
        )
        return asyncio.run(service.notify_new_orders(orders))


def test_token_format():
    assert is_valid_token("ExponentPushToken[abc123]")
    assert is_valid_token("ExpoPushToken[abc123]")
    assert not is_valid_token("abc123")
    assert not is_valid_token("")
    assert not is_valid_token(None)


def test_push_batches_of_at_most_100(scope):
    register(scope, 250)
    gateway = FakePushGateway()

    result = send(scope, gateway)

    assert sorted(len(chunk) for chunk in gateway.chunks) == [50, 100, 100]
    assert result.sent == 250
    assert result.batches == 3
    assert result.failed_batches == 0


def test_failed_chunk_does_not_stop_the_others(scope):
    register(scope, 250)
    # the second chunk is the one starting at device 100
    gateway = FakePushGateway(fail_when=lambda chunk: chunk[0]["to"] == token(100))

    result = send(scope, gateway)

    assert len(gateway.chunks) == 3
    assert result.sent == 150
    assert result.failed_batches == 1


def test_invalid_tokens_are_not_sent(scope):
    with scope() as session:
        repo = PushTokenRepository(session)
        repo.register(1, token(1))
        repo.register(2, "not-a-token")
    gateway = FakePushGateway()

    result = send(scope, gateway)

    assert [m["to"] for m in gateway.chunks[0]] == [token(1)]
    assert result.sent == 1


def test_message_payload_and_summary_notification(scope):
    register(scope, 1)
    gateway = FakePushGateway()

    send(scope, gateway)

    message = gateway.chunks[0][0]
    assert message["title"] == "3 new purchase orders detected"
    assert message["body"] == "Total amount: $30"
    assert message["priority"] == "high"
    assert message["data"]["type"] == NEW_ORDERS_PUSH
    with scope() as session:
        notifications = NotificationRepository(session).list()
    assert [(n.type, n.order_count) for n in notifications] == [(NEW_ORDERS_PUSH, 3)]


def test_empty_order_list_sends_nothing(scope):
    register(scope, 5)
    gateway = FakePushGateway()

    result = send(scope, gateway, orders=[])

    assert gateway.chunks == []
    assert result.sent == 0
    with scope() as session:
        assert NotificationRepository(session).list() == []


def test_gateway_error_entries_are_not_counted(scope):
    register(scope, 2)

    def handler(request):
        return httpx.Response(200, json={"data": [{"status": "ok"}, {"status": "error", "message": "DeviceNotRegistered"}]})

    with scope() as session:
        service = PushFanoutService(
            PushTokenRepository(session),
            NotificationRepository(session),
            transport=httpx.MockTransport(handler),
        )
        result = asyncio.run(service.send("title", "body"))

    assert result.sent == 1
