"""Database persistence layer."""

from .db import (
    create_db_engine,
    create_session_factory,
    get_engine,
    get_session,
    init_db,
    session_scope,
)
from .models import (
    Base,
    Institution,
    Notification,
    OrderLine,
    PurchaseOrder,
    PushToken,
    RunLock,
    ScanRun,
    Tender,
)
from .repo import (
    InstitutionRepository,
    NotificationRepository,
    OrderRepository,
    PushTokenRepository,
    RunRepository,
    TenderRepository,
)

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "get_engine",
    "get_session",
    "init_db",
    "session_scope",
    "Base",
    "Institution",
    "Notification",
    "OrderLine",
    "PurchaseOrder",
    "PushToken",
    "RunLock",
    "ScanRun",
    "Tender",
    "InstitutionRepository",
    "NotificationRepository",
    "OrderRepository",
    "PushTokenRepository",
    "RunRepository",
    "TenderRepository",
]
