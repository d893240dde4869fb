"""
SQLAlchemy ORM models for TenderWatch.

Defines the complete database schema including:
- Institutions: Buyers tenders are assigned to
- Tenders: Tenders tracked per user
- PurchaseOrders: Orders issued against tenders, shared by all users
- OrderLines: Line items of each order
- Notifications: Inbox entries created by daily scans
- PushTokens: Device tokens for push delivery
- ScanRuns: Execution logs
- RunLocks: Overlap protection
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


# =============================================================================
# Institution Model
# =============================================================================


class Institution(Base):
    """A buying institution tenders are assigned to."""

    __tablename__ = "institutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Institution(id={self.id}, name='{self.name}')>"


# =============================================================================
# Tender Model
# =============================================================================


class Tender(Base, TimestampMixin):
    """A tender tracked by one user.

    The same external code may be tracked by several users; each gets its
    own row.
    """

    __tablename__ = "tenders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Synced from the procurement service
    name: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Unknown")
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    closing_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    issuing_org: Mapped[str | None] = mapped_column(String(500), nullable=True)
    estimated_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Local contract data
    institution_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("institutions.id", ondelete="SET NULL", name="fk_tenders_institution_id"),
        nullable=True,
        index=True,
    )
    line: Mapped[str | None] = mapped_column(String(200), nullable=True)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    institution: Mapped["Institution | None"] = relationship("Institution")

    __table_args__ = (
        UniqueConstraint("code", "user_id", name="uq_tender_code_user"),
    )

    def __repr__(self) -> str:
        return f"<Tender(id={self.id}, code='{self.code}', user_id={self.user_id})>"


# =============================================================================
# Purchase Order Model
# =============================================================================


class PurchaseOrder(Base, TimestampMixin):
    """A purchase order, unique by code across all users.

    ``tender_code`` is a logical reference to ``tenders.code``; there is no
    foreign key because tender rows are per user.
    """

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    tender_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    name: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Unknown", index=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)

    supplier_name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    supplier_tax_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="CLP")

    sent_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    lines: Mapped[list["OrderLine"]] = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
    )

    __table_args__ = (
        Index("ix_order_tender_status", "tender_code", "status"),
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder(id={self.id}, code='{self.code}', tender='{self.tender_code}')>"


class OrderLine(Base):
    """Line item of a purchase order."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("purchase_orders.code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    product: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, default=0.0)

    order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="lines")

    def __repr__(self) -> str:
        return f"<OrderLine(order='{self.order_code}', position={self.position})>"


# =============================================================================
# Notification Model
# =============================================================================


class Notification(Base):
    """Inbox entry created by the daily scan."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tender_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    order_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type='{self.type}', read={self.read})>"


# =============================================================================
# Push Token Model
# =============================================================================


class PushToken(Base):
    """Device push token, one per user."""

    __tablename__ = "push_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    token: Mapped[str] = mapped_column(String(500), nullable=False)
    platform: Mapped[str | None] = mapped_column(String(20), nullable=True)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PushToken(user_id={self.user_id}, platform='{self.platform}')>"


# =============================================================================
# Scan Run Model
# =============================================================================


class ScanRun(Base):
    """Execution log for a discovery scan."""

    __tablename__ = "scan_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Run identification
    mode: Mapped[str] = mapped_column(String(20), nullable=False)  # targeted, daily
    tender_code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="RUNNING",
        index=True,
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Statistics
    pairs_scanned: Mapped[int] = mapped_column(Integer, default=0)
    pairs_failed: Mapped[int] = mapped_column(Integer, default=0)
    candidates_found: Mapped[int] = mapped_column(Integer, default=0)
    orders_new: Mapped[int] = mapped_column(Integer, default=0)
    orders_updated: Mapped[int] = mapped_column(Integer, default=0)
    persist_failures: Mapped[int] = mapped_column(Integer, default=0)
    notifications_created: Mapped[int] = mapped_column(Integer, default=0)
    push_sent: Mapped[int] = mapped_column(Integer, default=0)

    # Error details
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate run duration in seconds."""
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self) -> str:
        return f"<ScanRun(id={self.id}, mode='{self.mode}', status='{self.status}')>"


# =============================================================================
# Lock Model (for overlap protection)
# =============================================================================


class RunLock(Base):
    """Named lock preventing overlapping scans."""

    __tablename__ = "run_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    holder_id: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<RunLock(name='{self.lock_name}', holder='{self.holder_id}')>"
