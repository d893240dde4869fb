"""
Store maintenance: schema creation, Alembic migrations and stale locks.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config

console = Console()

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)


def _alembic_config(database_url: str):
    """Alembic config from alembic.ini, pointed at the configured store."""
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    return alembic_cfg


def _run_alembic(action: str, *args, **kwargs) -> None:
    from alembic import command
    from alembic.util import CommandError

    config = load_config()
    try:
        getattr(command, action)(_alembic_config(config.database.url), *args, **kwargs)
    except CommandError as e:
        err_console.print(f"[red]{action.capitalize()} failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("init")
def init_database(
    reset: bool = typer.Option(
        False,
        "--drop",
        help="Drop every table first (deletes tenders, orders and notifications)",
    ),
) -> None:
    """Create the store's tables and show their row counts."""
    from sqlalchemy import func, select

    from tenderwatch.persistence.db import drop_db, get_session, init_db
    from tenderwatch.persistence.models import Base

    config = load_config()

    if reset:
        typer.confirm("Drop all TenderWatch tables?", default=False, abort=True)
        drop_db(config.database.url)
        console.print("[yellow]Tables dropped[/yellow]")

    init_db(config.database.url, echo=config.database.echo)

    table = Table(title=config.database.url, show_header=True, header_style="bold magenta")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    with get_session() as session:
        for name, model_table in sorted(Base.metadata.tables.items()):
            rows = session.execute(select(func.count()).select_from(model_table)).scalar_one()
            table.add_row(name, str(rows))
    console.print(table)


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option("head", "--revision", "-r", help="Target revision"),
) -> None:
    """Upgrade the schema through Alembic."""
    console.print(f"Upgrading to [bold]{revision}[/bold]")
    _run_alembic("upgrade", revision)
    console.print("[green]OK[/green] Schema up to date")


@app.command("downgrade")
def downgrade_database(
    revision: str = typer.Argument(..., help="Target revision, e.g. -1 or base"),
) -> None:
    """Downgrade the schema through Alembic."""
    typer.confirm(f"Downgrade to '{revision}'? Dropped tables lose their data.", abort=True)
    _run_alembic("downgrade", revision)
    console.print("[green]OK[/green] Downgraded")


@app.command("current")
def show_current() -> None:
    """Show the store's Alembic revision."""
    _run_alembic("current", verbose=True)


@app.command("unlock")
def clear_expired_locks() -> None:
    """Delete run locks whose lifetime has passed."""
    from tenderwatch.core.scheduler import LockManager
    from tenderwatch.persistence.db import get_session

    from . import open_store

    open_store(load_config())
    with get_session() as session:
        removed = LockManager(session).cleanup_expired()
    console.print(f"[green]OK[/green] {removed} expired lock(s) removed")
