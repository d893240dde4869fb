"""
Run lock management for scans.

Locks are rows in ``run_locks`` keyed by job name, so overlapping scans
are rejected across processes sharing the database.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from tenderwatch.persistence.db import SessionScope
from tenderwatch.persistence.models import RunLock, utcnow

logger = logging.getLogger(__name__)


DAILY_SCAN_LOCK = "scan:daily"
TENDER_REFRESH_LOCK = "refresh:tenders"


def tender_scan_lock(tender_code: str) -> str:
    return f"scan:tender:{tender_code}"


def new_holder_id() -> str:
    """Identifier unique to one run of one process."""
    return f"{os.getpid()}-{uuid.uuid4().hex[:12]}"


class ScanInProgressError(Exception):
    """Another run holds the lock for this job."""

    def __init__(self, lock_name: str, holder_id: str | None = None):
        self.lock_name = lock_name
        self.holder_id = holder_id
        super().__init__(f"A run is already in progress for '{lock_name}'")


class LockManager:
    """Manages RunLock rows in database for overlap protection."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def holder_of(self, lock_name: str) -> str | None:
        """Holder of a live lock, or None when free or expired."""
        lock = self._get(lock_name)
        if lock is None or lock.expires_at <= utcnow():
            return None
        return lock.holder_id

    def _get(self, lock_name: str) -> RunLock | None:
        stmt = select(RunLock).where(RunLock.lock_name == lock_name)
        return self._session.execute(stmt).scalar_one_or_none()

    def acquire(self, lock_name: str, holder_id: str, ttl_minutes: int = 180) -> bool:
        """Acquire lock. Returns True if acquired, False if held by another.

        An expired lock is taken over with a single conditional UPDATE, so
        of two runs racing for the same expired row only one matches it.
        """
        now = utcnow()
        expires_at = now + timedelta(minutes=ttl_minutes)

        try:
            taken = self._session.execute(
                update(RunLock)
                .where(
                    RunLock.lock_name == lock_name,
                    or_(RunLock.expires_at <= now, RunLock.holder_id == holder_id),
                )
                .values(holder_id=holder_id, acquired_at=now, expires_at=expires_at)
                .execution_options(synchronize_session="fetch")
            )
            if not taken.rowcount:
                if self._get(lock_name) is not None:
                    self._session.rollback()
                    return False
                self._session.add(
                    RunLock(
                        lock_name=lock_name,
                        acquired_at=now,
                        expires_at=expires_at,
                        holder_id=holder_id,
                    )
                )
            self._session.commit()
        except IntegrityError:
            # Another process inserted the same lock first
            self._session.rollback()
            return False
        except OperationalError as e:
            # SQLite reports a competing writer as "database is locked"
            logger.warning("Lock %s not acquired: %s", lock_name, e)
            self._session.rollback()
            return False
        return True

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Release lock. Returns True if released, False if not held by us."""
        lock = self._get(lock_name)

        if lock is None or lock.holder_id != holder_id:
            return False

        self._session.delete(lock)
        self._session.commit()
        return True

    def is_locked(self, lock_name: str) -> bool:
        """Check if lock is currently held (not expired)."""
        return self.holder_of(lock_name) is not None

    def cleanup_expired(self) -> int:
        """Remove all expired locks. Returns count removed."""
        result = self._session.execute(delete(RunLock).where(RunLock.expires_at <= utcnow()))
        self._session.commit()
        return int(result.rowcount or 0)


@contextmanager
def run_lock(scope: SessionScope, lock_name: str, ttl_minutes: int = 180) -> Iterator[str]:
    """Hold a named lock for the duration of a block.

    Usage:
        with run_lock(scope, DAILY_SCAN_LOCK) as holder_id:
            ...

    Raises:
        ScanInProgressError: If the lock is held by another run
    """
    holder_id = new_holder_id()
    with scope() as session:
        manager = LockManager(session)
        if not manager.acquire(lock_name, holder_id, ttl_minutes):
            raise ScanInProgressError(lock_name, manager.holder_of(lock_name))

    try:
        yield holder_id
    finally:
        with scope() as session:
            LockManager(session).release(lock_name, holder_id)
