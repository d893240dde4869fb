"""
APScheduler v4 integration for TenderWatch.

Two cron schedules in the configured timezone:
- the daily order scan (01:00 by default)
- the tender refresh (18:00 by default)
"""

from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Awaitable, Callable

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.sqlalchemy import SQLAlchemyDataStore
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import create_async_engine

from tenderwatch.core.config import AppConfig, load_app_config
from tenderwatch.core.logging import get_logger
from tenderwatch.core.scheduler.locks import TENDER_REFRESH_LOCK, ScanInProgressError, run_lock

logger = get_logger("scheduler")


DAILY_SCAN_JOB = "daily-order-scan"
TENDER_REFRESH_JOB = "tender-refresh"


async def execute_daily_scan(config_path: str | None = None) -> int:
    """Scheduled daily order scan. Returns the number of new orders."""
    from tenderwatch.core.orchestrator.runner import open_runtime

    config = load_app_config(config_path)
    async with open_runtime(config) as runtime:
        try:
            orders = await runtime.engine.scan_daily_new_orders()
        except ScanInProgressError:
            logger.info("Daily scan already running, skipping")
            return 0
        except Exception:
            logger.exception("Scheduled daily scan failed")
            raise

    logger.info("Scheduled daily scan found %d new orders", len(orders))
    return len(orders)


async def execute_tender_refresh(config_path: str | None = None) -> int:
    """Scheduled resync of every tracked tender. Returns codes refreshed."""
    from tenderwatch.core.orchestrator.runner import open_runtime

    config = load_app_config(config_path)
    async with open_runtime(config) as runtime:
        try:
            with run_lock(runtime.scope, TENDER_REFRESH_LOCK, config.scheduler.lock_ttl_minutes):
                results = await runtime.tracking.refresh_all_tenders()
        except ScanInProgressError:
            logger.info("Tender refresh already running, skipping")
            return 0

    refreshed = sum(1 for r in results if r.ok)
    logger.info("Scheduled refresh updated %d/%d tenders", refreshed, len(results))
    return refreshed


JOBS: dict[str, Callable[[str | None], Awaitable[int]]] = {
    DAILY_SCAN_JOB: execute_daily_scan,
    TENDER_REFRESH_JOB: execute_tender_refresh,
}


def build_trigger(at: time, timezone: str) -> CronTrigger:
    """Daily cron trigger at a local time of day."""
    return CronTrigger(hour=at.hour, minute=at.minute, timezone=timezone)


class SchedulerService:
    """APScheduler v4 integration for TenderWatch."""

    def __init__(self, config: AppConfig, config_path: Path | str | None = None) -> None:
        self.config = config
        self.config_path = str(config_path) if config_path is not None else None

    def schedules(self) -> dict[str, CronTrigger]:
        """Job name -> trigger for every scheduled job."""
        scheduler = self.config.scheduler
        return {
            DAILY_SCAN_JOB: build_trigger(scheduler.daily_scan_time, scheduler.timezone),
            TENDER_REFRESH_JOB: build_trigger(scheduler.tender_refresh_time, scheduler.timezone),
        }

    def _data_store(self) -> SQLAlchemyDataStore:
        url = self.config.scheduler.data_store_url
        if url.startswith("sqlite") and ":///" in url:
            Path(url.split(":///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)
        return SQLAlchemyDataStore(create_async_engine(url))

    async def start(self) -> None:
        """Start scheduler in foreground mode (blocking)."""
        async with AsyncScheduler(data_store=self._data_store()) as scheduler:
            for job_name, trigger in self.schedules().items():
                await scheduler.add_schedule(
                    JOBS[job_name],
                    trigger,
                    id=job_name,
                    args=[self.config_path],
                    conflict_policy=ConflictPolicy.replace,
                )
                logger.info("Scheduled %s: %s", job_name, trigger)
            await scheduler.run_until_stopped()

    async def trigger_now(self, job_name: str) -> int:
        """Run a scheduled job immediately in this process."""
        if job_name not in JOBS:
            raise ValueError(f"Unknown job: {job_name}")
        return await JOBS[job_name](self.config_path)
