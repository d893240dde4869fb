"""
Purchase-order scan commands.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config, open_store, setup_cli_logging

console = Console()

app = typer.Typer(
    help="Scan for purchase orders",
    no_args_is_help=True,
)


def _parse_scan_date(value: Optional[str]) -> Optional[date]:
    """Read a DDMMYYYY date, as the procurement API writes them."""
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%d%m%Y").date()
    except ValueError:
        raise typer.BadParameter(f"expected DDMMYYYY, got '{value}'")


@app.command("scan-daily")
def scan_daily(
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Abort the scan after this many seconds",
    ),
    on_date: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Scan this day and the one before (DDMMYYYY) instead of today",
        callback=_parse_scan_date,
    ),
) -> None:
    """Find new orders of tracked tenders issued today or yesterday.

    New orders are stored, grouped into per-tender notifications and
    pushed to registered devices.
    """
    from tenderwatch.core.notify import format_amount
    from tenderwatch.core.orchestrator import ScanInProgressError, open_runtime

    config = load_config()
    setup_cli_logging(config)

    async def _scan():
        async with open_runtime(config) as runtime:
            return await asyncio.wait_for(runtime.engine.scan_daily_new_orders(on_date), timeout)

    try:
        orders = asyncio.run(_scan())
    except ScanInProgressError:
        err_console.print("[yellow]A daily scan is already running[/yellow]")
        raise typer.Exit(1)
    except asyncio.TimeoutError:
        err_console.print(f"[red]Scan timed out after {timeout:g}s[/red]")
        raise typer.Exit(1)

    if not orders:
        console.print("[dim]No new purchase orders.[/dim]")
        return

    table = Table(title="New Purchase Orders", show_header=True, header_style="bold magenta")
    table.add_column("Code", style="cyan")
    table.add_column("Tender")
    table.add_column("Supplier")
    table.add_column("Amount", justify="right")

    for order in orders:
        table.add_row(order.code, order.tender_code or "", order.supplier_name, format_amount(order.amount))

    console.print(table)


@app.command("runs")
def list_runs(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of runs to show"),
) -> None:
    """Show recent scan runs."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import RunRepository

    open_store(load_config())

    with get_session() as session:
        runs = RunRepository(session).get_recent(limit=limit)

        if not runs:
            console.print("[dim]No scans run yet.[/dim]")
            return

        table = Table(title="Scan Runs", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Mode")
        table.add_column("Tender")
        table.add_column("Status")
        table.add_column("Started")
        table.add_column("New", justify="right")
        table.add_column("Failures", justify="right")

        for run in runs:
            table.add_row(
                str(run.id),
                run.mode,
                run.tender_code or "[dim]-[/dim]",
                run.status,
                run.started_at.strftime("%Y-%m-%d %H:%M"),
                str(run.orders_new),
                str(run.pairs_failed + run.persist_failures),
            )

    console.print(table)


@app.command("show")
def show_order(
    code: str = typer.Argument(..., help="Purchase order code"),
    fetch: bool = typer.Option(False, "--fetch", "-f", help="Ask the procurement API when not stored"),
) -> None:
    """Show a purchase order and its line items."""
    from tenderwatch.core.client import ApiError
    from tenderwatch.core.notify import format_amount
    from tenderwatch.core.orchestrator import TrackingService, open_runtime
    from tenderwatch.persistence.db import get_session

    config = load_config()
    open_store(config)
    order = TrackingService(get_session, client=None).stored_order(code)
    source = "stored"

    if order is None and fetch:
        async def _lookup():
            async with open_runtime(config) as runtime:
                return await runtime.tracking.lookup_order(code)

        try:
            order = asyncio.run(_lookup())
        except ApiError as e:
            err_console.print(f"[red]Lookup failed:[/red] {e}")
            raise typer.Exit(1)
        source = "not stored, from the API"

    if order is None:
        hint = "" if fetch else " Use --fetch to ask the procurement API."
        err_console.print(f"[red]Purchase order not found:[/red] {code}.{hint}")
        raise typer.Exit(1)

    console.print(f"[bold cyan]{order.code}[/bold cyan] {order.name or ''} [dim]({source})[/dim]")
    console.print(f"[dim]Tender:[/dim] {order.tender_code or '-'}")
    console.print(f"[dim]Status:[/dim] {order.status}")
    console.print(f"[dim]Supplier:[/dim] {order.supplier_name or '-'} {order.supplier_tax_id}")
    console.print(f"[dim]Amount:[/dim] {format_amount(order.amount)} {order.currency}")
    if order.sent_date:
        console.print(f"[dim]Sent:[/dim] {order.sent_date:%Y-%m-%d}")

    if not order.lines:
        return

    table = Table(title="Line Items", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Product", max_width=50)
    table.add_column("Quantity", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column("Total", justify="right")

    for line in order.lines:
        table.add_row(
            str(line.position),
            line.product or line.description or "",
            f"{line.quantity:g} {line.unit or ''}".strip(),
            format_amount(line.unit_price),
            format_amount(line.total),
        )

    console.print(table)
