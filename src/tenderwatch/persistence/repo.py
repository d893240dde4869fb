"""
Repository pattern for database operations.

Provides clean abstractions for CRUD operations on domain models,
including insert-or-update logic for tenders and purchase orders.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Sequence

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.orm import Session

from .models import (
    Institution,
    Notification,
    OrderLine,
    PurchaseOrder,
    PushToken,
    ScanRun,
    Tender,
    utcnow,
)

if TYPE_CHECKING:
    from tenderwatch.core.normalize import OrderCanonical, TenderCanonical


# =============================================================================
# Tender Repository
# =============================================================================


class TenderRepository:
    """Repository for Tender CRUD operations.

    Tender rows are per user: every lookup by code for a single row also
    takes the owning user.
    """

    SYNCED_FIELDS = [
        "name",
        "status",
        "status_code",
        "closing_date",
        "issuing_org",
        "estimated_amount",
    ]

    def __init__(self, session: Session):
        self.session = session

    def get(self, code: str, user_id: int) -> Tender | None:
        """Get a user's tender by code."""
        stmt = select(Tender).where(and_(Tender.code == code, Tender.user_id == user_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_user(self, user_id: int) -> Sequence[Tender]:
        """Get all tenders tracked by a user, newest first."""
        stmt = (
            select(Tender)
            .where(Tender.user_id == user_id)
            .order_by(Tender.created_at.desc(), Tender.id.desc())
        )
        return self.session.execute(stmt).scalars().all()

    def list_by_code(self, code: str) -> Sequence[Tender]:
        """Get every user's row for a tender code."""
        stmt = select(Tender).where(Tender.code == code).order_by(Tender.user_id)
        return self.session.execute(stmt).scalars().all()

    def distinct_codes(self) -> list[str]:
        """Codes tracked by any user, sorted."""
        stmt = select(Tender.code).distinct().order_by(Tender.code)
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        return self.session.execute(select(func.count(Tender.id))).scalar_one()

    def _synced_values(self, tender: "TenderCanonical") -> dict[str, Any]:
        data = tender.to_dict()
        return {field: data[field] for field in self.SYNCED_FIELDS}

    def upsert(self, tender: "TenderCanonical", user_id: int) -> tuple[Tender, bool]:
        """Create or update a user's tender from service data.

        Local contract data is left untouched on update.

        Returns:
            Tuple of (tender, created) where created is True if new
        """
        values = self._synced_values(tender)
        existing = self.get(tender.code, user_id)

        if existing:
            for field, value in values.items():
                setattr(existing, field, value)
            self.session.flush()
            return existing, False

        row = Tender(code=tender.code, user_id=user_id, **values)
        self.session.add(row)
        self.session.flush()
        return row, True

    def update_synced(self, tender: "TenderCanonical") -> int:
        """Overwrite service data on every user's row for the code.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(Tender)
            .where(Tender.code == tender.code)
            .values(**self._synced_values(tender), updated_at=utcnow())
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)

    def assign(
        self,
        code: str,
        user_id: int,
        institution_id: int | None = None,
        line: str | None = None,
    ) -> Tender | None:
        """Set the institution and line of a user's tender."""
        tender = self.get(code, user_id)
        if tender is None:
            return None
        tender.institution_id = institution_id
        tender.line = line
        self.session.flush()
        return tender

    def set_contract_data(
        self,
        code: str,
        user_id: int,
        total_amount: float | None = None,
        due_date: datetime | None = None,
    ) -> Tender | None:
        """Set the authorized total and due date of a user's tender."""
        tender = self.get(code, user_id)
        if tender is None:
            return None
        tender.total_amount = total_amount
        tender.due_date = due_date
        self.session.flush()
        return tender

    def delete(self, code: str, user_id: int) -> bool:
        """Delete a user's tender row. Orders are kept."""
        tender = self.get(code, user_id)
        if tender:
            self.session.delete(tender)
            return True
        return False


# =============================================================================
# Institution Repository
# =============================================================================


class InstitutionRepository:
    """Repository for the institutions tenders are assigned to."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, institution_id: int) -> Institution | None:
        return self.session.get(Institution, institution_id)

    def get_by_name(self, name: str) -> Institution | None:
        stmt = select(Institution).where(Institution.name == name)
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> Sequence[Institution]:
        """All institutions, by name."""
        return self.session.execute(select(Institution).order_by(Institution.name)).scalars().all()

    def create(self, name: str) -> tuple[Institution, bool]:
        """Create an institution unless one with the name exists.

        Returns:
            Tuple of (institution, created) where created is True if new
        """
        existing = self.get_by_name(name)
        if existing is not None:
            return existing, False
        institution = Institution(name=name)
        self.session.add(institution)
        self.session.flush()
        return institution, True

    def delete(self, institution_id: int) -> bool:
        """Delete an institution, unassigning its tenders first."""
        institution = self.get(institution_id)
        if institution is None:
            return False
        self.session.execute(
            update(Tender).where(Tender.institution_id == institution_id).values(institution_id=None)
        )
        self.session.delete(institution)
        self.session.flush()
        return True

    def tenders(self, institution_id: int, user_id: int) -> Sequence[Tender]:
        """A user's tenders assigned to an institution, grouped by line."""
        stmt = (
            select(Tender)
            .where(and_(Tender.institution_id == institution_id, Tender.user_id == user_id))
            .order_by(Tender.line.asc().nullslast(), Tender.created_at.desc(), Tender.id.desc())
        )
        return self.session.execute(stmt).scalars().all()


# =============================================================================
# Purchase Order Repository
# =============================================================================


class OrderRepository:
    """Repository for PurchaseOrder operations.

    Orders are unique by code across users and never deleted here.
    """

    FIELDS = [
        "tender_code",
        "name",
        "status",
        "status_code",
        "supplier_name",
        "supplier_tax_id",
        "amount",
        "currency",
        "sent_date",
        "accepted_date",
    ]

    def __init__(self, session: Session):
        self.session = session

    def get(self, code: str) -> PurchaseOrder | None:
        """Get order by unique code."""
        stmt = select(PurchaseOrder).where(PurchaseOrder.code == code)
        return self.session.execute(stmt).scalar_one_or_none()

    def exists(self, code: str) -> bool:
        stmt = select(PurchaseOrder.id).where(PurchaseOrder.code == code)
        return self.session.execute(stmt).first() is not None

    def list_for_tender(self, tender_code: str) -> Sequence[PurchaseOrder]:
        """Get orders of a tender, oldest sent first."""
        stmt = (
            select(PurchaseOrder)
            .where(PurchaseOrder.tender_code == tender_code)
            .order_by(PurchaseOrder.sent_date.asc().nullslast(), PurchaseOrder.code)
        )
        return self.session.execute(stmt).scalars().all()

    def upsert(self, order: "OrderCanonical") -> tuple[PurchaseOrder, bool]:
        """Insert an order or overwrite every field of the stored one.

        Line items are replaced wholesale when the order carries any.

        Returns:
            Tuple of (order, created) where created is True if new

        Raises:
            ValueError: If the order has no resolved tender code
        """
        if not order.tender_code:
            raise ValueError(f"Order {order.code} has no tender code")

        data = order.to_dict()
        values = {field: data[field] for field in self.FIELDS}
        existing = self.get(order.code)
        created = existing is None

        if existing is None:
            existing = PurchaseOrder(code=order.code, **values)
            self.session.add(existing)
        else:
            for field, value in values.items():
                setattr(existing, field, value)

        if order.lines:
            existing.lines = [
                OrderLine(
                    position=line.position,
                    product_code=line.product_code,
                    product=line.product,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price=line.unit_price,
                    total=line.total,
                )
                for line in order.lines
            ]

        self.session.flush()
        return existing, created

    def totals(
        self,
        supplier_names: Iterable[str],
        tender_code: str | None = None,
    ) -> tuple[int, float]:
        """Count and amount of non-cancelled orders from allow-listed suppliers."""
        stmt = select(func.count(PurchaseOrder.id), func.coalesce(func.sum(PurchaseOrder.amount), 0.0)).where(
            and_(
                PurchaseOrder.supplier_name.in_(list(supplier_names)),
                PurchaseOrder.status != "Cancelled",
            )
        )
        if tender_code is not None:
            stmt = stmt.where(PurchaseOrder.tender_code == tender_code)
        count, amount = self.session.execute(stmt).one()
        return int(count), float(amount)


# =============================================================================
# Notification Repository
# =============================================================================


class NotificationRepository:
    """Repository for the notification inbox."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        type: str,
        title: str,
        message: str = "",
        tender_code: str | None = None,
        order_count: int | None = None,
    ) -> Notification:
        """Create an unread notification."""
        notification = Notification(
            type=type,
            title=title,
            message=message,
            tender_code=tender_code,
            order_count=order_count,
            read=False,
        )
        self.session.add(notification)
        self.session.flush()
        return notification

    def list(self, unread_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        """Unread notifications, or the latest ``limit`` of all of them."""
        stmt = select(Notification)
        if unread_only:
            stmt = stmt.where(Notification.read == False)  # noqa: E712
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        if not unread_only:
            stmt = stmt.limit(limit)
        return self.session.execute(stmt).scalars().all()

    def count_unread(self) -> int:
        stmt = select(func.count(Notification.id)).where(Notification.read == False)  # noqa: E712
        return self.session.execute(stmt).scalar_one()

    def mark_read(self, notification_id: int) -> bool:
        result = self.session.execute(
            update(Notification).where(Notification.id == notification_id).values(read=True)
        )
        return bool(result.rowcount)

    def mark_all_read(self) -> int:
        result = self.session.execute(
            update(Notification).where(Notification.read == False).values(read=True)  # noqa: E712
        )
        return int(result.rowcount or 0)

    def delete(self, notification_id: int) -> bool:
        result = self.session.execute(delete(Notification).where(Notification.id == notification_id))
        return bool(result.rowcount)

    def delete_all(self) -> int:
        result = self.session.execute(delete(Notification))
        return int(result.rowcount or 0)


# =============================================================================
# Push Token Repository
# =============================================================================


class PushTokenRepository:
    """Repository for device push tokens, one per user."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> PushToken | None:
        stmt = select(PushToken).where(PushToken.user_id == user_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def register(self, user_id: int, token: str, platform: str | None = None) -> PushToken:
        """Register a user's token, replacing any previous one."""
        existing = self.get(user_id)
        if existing:
            existing.token = token
            existing.platform = platform
            existing.registered_at = utcnow()
            self.session.flush()
            return existing

        push_token = PushToken(user_id=user_id, token=token, platform=platform)
        self.session.add(push_token)
        self.session.flush()
        return push_token

    def unregister(self, user_id: int) -> bool:
        """Remove a user's token. Returns False if none was registered."""
        result = self.session.execute(delete(PushToken).where(PushToken.user_id == user_id))
        return bool(result.rowcount)

    def list_all(self) -> Sequence[PushToken]:
        stmt = select(PushToken).order_by(PushToken.user_id)
        return self.session.execute(stmt).scalars().all()

    def all_tokens(self) -> list[str]:
        stmt = select(PushToken.token).order_by(PushToken.user_id)
        return list(self.session.execute(stmt).scalars().all())


# =============================================================================
# Run Repository
# =============================================================================


class RunRepository:
    """Repository for ScanRun operations."""

    COUNTERS = [
        "pairs_scanned",
        "pairs_failed",
        "candidates_found",
        "orders_new",
        "orders_updated",
        "persist_failures",
        "notifications_created",
        "push_sent",
    ]

    def __init__(self, session: Session):
        self.session = session

    def create(self, mode: str, tender_code: str | None = None, status: str = "RUNNING") -> ScanRun:
        """Create a new scan run."""
        run = ScanRun(mode=mode, tender_code=tender_code, status=status)
        self.session.add(run)
        self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> ScanRun | None:
        """Get run by ID."""
        return self.session.get(ScanRun, run_id)

    def complete(
        self,
        run_id: int,
        status: str = "COMPLETED",
        error_message: str | None = None,
        **counters: int,
    ) -> None:
        """Mark a run as finished and store its counters."""
        run = self.get_by_id(run_id)
        if not run:
            return

        for name, value in counters.items():
            if name in self.COUNTERS:
                setattr(run, name, value)

        run.status = status
        run.finished_at = utcnow()
        run.error_message = error_message

    def get_recent(self, mode: str | None = None, limit: int = 20) -> Sequence[ScanRun]:
        """Get recent runs."""
        stmt = select(ScanRun)

        if mode is not None:
            stmt = stmt.where(ScanRun.mode == mode)

        stmt = stmt.order_by(ScanRun.started_at.desc(), ScanRun.id.desc())
        stmt = stmt.limit(limit)

        return self.session.execute(stmt).scalars().all()
