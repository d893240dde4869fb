"""
Engine and session handling for the TenderWatch store.

Everything runs on a synchronous SQLAlchemy engine. Services receive a
``SessionScope`` so tests can hand them an in-memory database while the
CLI and scheduler use the process-wide engine.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///data/tenderwatch.db"

SessionScope = Callable[[], ContextManager[Session]]

SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite
# =============================================================================


def _configure_sqlite(engine: Engine) -> None:
    """Apply pragmas on connect and let SQLAlchemy emit BEGIN itself.

    pysqlite's own transaction handling breaks SAVEPOINT, which
    ``persist_orders`` relies on for per-order isolation.
    """
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# =============================================================================
# Engines
# =============================================================================


def create_db_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False, pool_size: int = 5) -> Engine:
    """Create a database engine.

    ``sqlite://`` (no path) gives an in-memory database shared by every
    session of the engine.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)

    Returns:
        SQLAlchemy Engine instance
    """
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=10,
            pool_pre_ping=True,
        )

    if url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # Ensure data directory exists for SQLite
        db_path = url.split(":///", 1)[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    _configure_sqlite(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Get or create the process-wide database engine.

    The first call fixes the URL; later calls return the same engine.
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is None:
        _sync_engine = create_db_engine(url, echo=echo)
        _sync_session_factory = create_session_factory(_sync_engine)

    return _sync_engine


# =============================================================================
# Sessions
# =============================================================================


def session_scope(factory: sessionmaker[Session]) -> SessionScope:
    """Wrap a session factory into a unit-of-work callable.

    Each ``with scope() as session`` block commits on success and rolls
    back on any exception. Services take a scope instead of a session so
    each step of a scan commits on its own.
    """
    @contextmanager
    def scope() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Unit of work on the process-wide engine (default URL if unset)."""
    if _sync_session_factory is None:
        get_engine()

    assert _sync_session_factory is not None
    with session_scope(_sync_session_factory)() as session:
        yield session


# =============================================================================
# Schema
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Bind the process-wide engine and create missing tables.

    Alembic (``tenderwatch db migrate``) is the way to evolve an existing
    store; this only fills in tables that are absent.
    """
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)
    return engine


def drop_db(url: str = DEFAULT_DATABASE_URL) -> None:
    """Drop every table, data included."""
    Base.metadata.drop_all(bind=get_engine(url))
