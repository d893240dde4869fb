"""Notifications - per-tender inbox entries and push fan-out."""

from .aggregator import (
    NEW_ORDERS,
    NotificationAggregator,
    OrderGroup,
    format_amount,
    group_by_tender,
)
from .push import (
    DEFAULT_GATEWAY_URL,
    NEW_ORDERS_PUSH,
    PushFanoutService,
    PushResult,
    is_valid_token,
)

__all__ = [
    "NEW_ORDERS",
    "NotificationAggregator",
    "OrderGroup",
    "format_amount",
    "group_by_tender",
    "DEFAULT_GATEWAY_URL",
    "NEW_ORDERS_PUSH",
    "PushFanoutService",
    "PushResult",
    "is_valid_token",
]
