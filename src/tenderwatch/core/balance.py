"""
Remaining balance of a tender's authorized amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Protocol

from tenderwatch.core.normalize import OrderStatus, normalize_code
from tenderwatch.core.orchestrator.runner import TenderNotFoundError
from tenderwatch.persistence.repo import OrderRepository, TenderRepository

if TYPE_CHECKING:
    from tenderwatch.persistence.db import SessionScope


class _OrderLike(Protocol):
    amount: float
    status: str
    supplier_name: str


@dataclass
class Balance:
    """Authorized total against what allow-listed suppliers have been ordered."""

    total_amount: float
    ordered_amount: float
    balance: float
    percentage: float | None
    order_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_amount": self.total_amount,
            "ordered_amount": self.ordered_amount,
            "balance": self.balance,
            "percentage": self.percentage,
            "order_count": self.order_count,
        }


def compute_balance(
    total_amount: float | None,
    orders: Iterable[_OrderLike],
    allowed_suppliers: Iterable[str] | None = None,
) -> Balance:
    """Compute a tender's balance.

    Cancelled orders and orders from suppliers outside ``allowed_suppliers``
    are not counted. ``allowed_suppliers=None`` counts every supplier.
    ``percentage`` is the remaining share of the total, or None when there
    is no positive total.
    """
    allowed = None if allowed_suppliers is None else set(allowed_suppliers)
    total = float(total_amount or 0.0)

    counted = [
        order
        for order in orders
        if order.status != OrderStatus.CANCELLED.value
        and (allowed is None or order.supplier_name in allowed)
    ]
    ordered = float(sum(order.amount or 0.0 for order in counted))
    remaining = total - ordered

    return Balance(
        total_amount=total,
        ordered_amount=ordered,
        balance=remaining,
        percentage=(remaining / total * 100.0) if total > 0 else None,
        order_count=len(counted),
    )


class BalanceService:
    """Computes balances from stored tenders and orders."""

    def __init__(self, scope: "SessionScope", allowed_suppliers: Iterable[str]):
        self.scope = scope
        self.allowed_suppliers = list(allowed_suppliers)

    def for_tender(self, code: str, user_id: int) -> Balance:
        """Balance of a user's tender.

        Raises:
            TenderNotFoundError: If the user does not track the tender
        """
        with self.scope() as session:
            tender = TenderRepository(session).get(normalize_code(code), user_id)
            if tender is None:
                raise TenderNotFoundError(code)
            orders = OrderRepository(session).list_for_tender(tender.code)
            return compute_balance(tender.total_amount, orders, self.allowed_suppliers)
