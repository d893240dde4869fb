"""
Per-tender notifications for newly discovered orders.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Sequence

from tenderwatch.core.normalize import OrderCanonical

if TYPE_CHECKING:
    from tenderwatch.persistence.models import Notification
    from tenderwatch.persistence.repo import NotificationRepository

logger = logging.getLogger(__name__)


NEW_ORDERS = "new-orders"


def format_amount(amount: float) -> str:
    """Chilean peso formatting: ``$1.234.567``."""
    return "$" + f"{round(amount):,}".replace(",", ".")


def plural(count: int, singular: str, plural_form: str | None = None) -> str:
    return singular if count == 1 else (plural_form or f"{singular}s")


@dataclass
class OrderGroup:
    """New orders of one tender."""

    tender_code: str
    orders: list[OrderCanonical] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.orders)

    @property
    def total_amount(self) -> float:
        return sum(order.amount for order in self.orders)


def group_by_tender(orders: Iterable[OrderCanonical]) -> list[OrderGroup]:
    """Group orders by resolved tender code, sorted by code."""
    groups: dict[str, list[OrderCanonical]] = defaultdict(list)
    for order in orders:
        groups[order.tender_code].append(order)
    return [OrderGroup(code, groups[code]) for code in sorted(groups)]


class NotificationAggregator:
    """Creates one inbox notification per tender with new orders."""

    def __init__(self, notifications: "NotificationRepository"):
        self.notifications = notifications

    def create_notifications(self, orders: Sequence[OrderCanonical]) -> list["Notification"]:
        created = []
        for group in group_by_tender(orders):
            if not group.count:
                continue
            title = (
                f"{group.count} new {plural(group.count, 'order')} "
                f"for tender {group.tender_code}"
            )
            message = f"Total amount: {format_amount(group.total_amount)}"
            created.append(
                self.notifications.create(
                    type=NEW_ORDERS,
                    title=title,
                    message=message,
                    tender_code=group.tender_code,
                    order_count=group.count,
                )
            )
            logger.info("Notification for %s: %d orders", group.tender_code, group.count)
        return created
