"""
Alembic environment for the TenderWatch store.

The URL comes from DATABASE_URL, then ``sqlalchemy.url`` (set by
``tenderwatch db migrate`` from app.yaml), then the default SQLite file.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context

from tenderwatch.persistence.db import DEFAULT_DATABASE_URL, create_db_engine
from tenderwatch.persistence.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def get_url() -> str:
    return (
        os.environ.get("DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
        or DEFAULT_DATABASE_URL
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL instead of executing it."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate a live database through the same engine setup the app uses."""
    engine = create_db_engine(get_url())
    try:
        with engine.connect() as connection:
            # batch mode lets SQLite rebuild tables for ALTER
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
