"""Scheduler service - APScheduler integration and run locks."""

from .locks import (
    DAILY_SCAN_LOCK,
    TENDER_REFRESH_LOCK,
    LockManager,
    ScanInProgressError,
    run_lock,
    tender_scan_lock,
)
from .service import (
    DAILY_SCAN_JOB,
    TENDER_REFRESH_JOB,
    SchedulerService,
    execute_daily_scan,
    execute_tender_refresh,
)

__all__ = [
    "DAILY_SCAN_LOCK",
    "TENDER_REFRESH_LOCK",
    "LockManager",
    "ScanInProgressError",
    "run_lock",
    "tender_scan_lock",
    "DAILY_SCAN_JOB",
    "TENDER_REFRESH_JOB",
    "SchedulerService",
    "execute_daily_scan",
    "execute_tender_refresh",
]
