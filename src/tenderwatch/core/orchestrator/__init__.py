"""Orchestrator - scan coordination, persistence and tracking operations."""

from tenderwatch.core.scheduler.locks import ScanInProgressError

from .runner import (
    InstitutionNotFoundError,
    ReconciliationEngine,
    RefreshResult,
    RunStats,
    Runtime,
    TenderNotFoundError,
    TrackingService,
    open_runtime,
    persist_orders,
)
from .sync import ImportResult, SyncFormatError

__all__ = [
    "ImportResult",
    "InstitutionNotFoundError",
    "ReconciliationEngine",
    "RefreshResult",
    "RunStats",
    "Runtime",
    "ScanInProgressError",
    "SyncFormatError",
    "TenderNotFoundError",
    "TrackingService",
    "open_runtime",
    "persist_orders",
]
