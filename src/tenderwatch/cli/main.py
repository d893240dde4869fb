"""
TenderWatch CLI - Main entry point.

Tracks Mercado Publico tenders, discovers their purchase orders and
notifies registered devices.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from tenderwatch import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Mercado Publico tender and purchase-order tracker",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml)",
        envvar="TENDERWATCH_CONFIG",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TenderWatch - Tender and purchase-order tracker."""
    from .commands import state

    state["config_path"] = config


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import db, institutions, notifications, orders, push, schedule, tenders  # noqa: E402

app.add_typer(tenders.app, name="tenders", help="Track tenders and their purchase orders")
app.add_typer(institutions.app, name="institutions", help="Manage institutions and product lines")
app.add_typer(orders.app, name="orders", help="Scan for purchase orders")
app.add_typer(notifications.app, name="notifications", help="Read and manage notifications")
app.add_typer(push.app, name="push", help="Manage device push tokens")
app.add_typer(schedule.app, name="schedule", help="Run scheduled jobs")
app.add_typer(db.app, name="db", help="Database operations")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize TenderWatch database and configuration.

    Creates required directories, the default configuration file,
    and initializes the database schema.
    """
    from tenderwatch.core.config import DEFAULT_APP_YAML, DEFAULT_CONFIG_PATH

    from .commands import load_config, state

    config_path = state["config_path"] or DEFAULT_CONFIG_PATH
    if not config_path.exists() or force:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(DEFAULT_APP_YAML, encoding="utf-8")

    config = load_config()
    config.ensure_directories()

    from tenderwatch.persistence.db import init_db

    init_db(config.database.url)

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - TenderWatch initialized successfully![/bold green]\n\n"
        "Created:\n"
        f"  - [cyan]{config_path}[/cyan] - Application configuration\n"
        f"  - [cyan]{config.data_dir}/[/cyan] - Database storage\n\n"
        "Next steps:\n"
        "  1. Set [yellow]MERCADO_PUBLICO_TICKET[/yellow] in .env\n"
        "  2. Track a tender: [yellow]tenderwatch tenders add <code>[/yellow]\n"
        "  3. Find its orders: [yellow]tenderwatch tenders detect-orders <code>[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status() -> None:
    """Show TenderWatch status and statistics."""
    from rich.table import Table

    from tenderwatch.core.notify import format_amount
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import (
        NotificationRepository,
        OrderRepository,
        PushTokenRepository,
        RunRepository,
        TenderRepository,
    )

    from .commands import load_config, open_store

    config = load_config()
    open_store(config)

    console.print()
    console.print("[bold]TenderWatch Status[/bold]")
    console.print()

    with get_session() as session:
        order_count, order_amount = OrderRepository(session).totals(config.supplier_names)

        stats_table = Table(show_header=False)
        stats_table.add_column("Metric", style="cyan")
        stats_table.add_column("Value", justify="right")
        stats_table.add_row("Tracked tenders", str(TenderRepository(session).count()))
        stats_table.add_row("Purchase orders", str(order_count))
        stats_table.add_row("Ordered amount", format_amount(order_amount))
        stats_table.add_row("Unread notifications", str(NotificationRepository(session).count_unread()))
        stats_table.add_row("Push tokens", str(len(PushTokenRepository(session).all_tokens())))
        console.print(stats_table)
        console.print()

        runs = RunRepository(session).get_recent(limit=5)
        if runs:
            run_table = Table(title="Recent Scans", show_header=True, header_style="bold magenta")
            run_table.add_column("Mode", style="cyan")
            run_table.add_column("Tender")
            run_table.add_column("Status", justify="center")
            run_table.add_column("Started", justify="right")
            run_table.add_column("New", justify="right")

            for run in runs:
                style = {"COMPLETED": "green", "FAILED": "red"}.get(run.status, "yellow")
                run_table.add_row(
                    run.mode,
                    run.tender_code or "[dim]-[/dim]",
                    f"[{style}]{run.status}[/{style}]",
                    run.started_at.strftime("%Y-%m-%d %H:%M"),
                    str(run.orders_new),
                )
            console.print(run_table)
        else:
            console.print("[dim]No scans run yet.[/dim]")

    suppliers = ", ".join(config.supplier_names) or "[dim]none[/dim]"
    console.print(f"\n[dim]Suppliers:[/dim] {suppliers}")
    if not config.api.ticket:
        err_console.print("[yellow]No API ticket configured (MERCADO_PUBLICO_TICKET)[/yellow]")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
