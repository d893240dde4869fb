"""
Tender tracking commands.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config, open_store, setup_cli_logging

console = Console()

app = typer.Typer(
    help="Track tenders and their purchase orders",
    no_args_is_help=True,
)

USER_OPTION = typer.Option(1, "--user", "-u", help="User id owning the tracked tender")


def _format_money(value: float | None) -> str:
    from tenderwatch.core.notify import format_amount

    return "[dim]-[/dim]" if value is None else format_amount(value)


def _format_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "[dim]-[/dim]"


@app.command("add")
def add_tender(
    code: str = typer.Argument(..., help="Tender code (e.g. 1057480-12-LE24)"),
    user_id: int = USER_OPTION,
) -> None:
    """Start tracking a tender."""
    from tenderwatch.core.client import ApiError
    from tenderwatch.core.orchestrator import TenderNotFoundError, open_runtime

    config = load_config()

    async def _add():
        async with open_runtime(config) as runtime:
            return await runtime.tracking.add_tender(code, user_id)

    try:
        tender = asyncio.run(_add())
    except TenderNotFoundError:
        err_console.print(f"[red]Tender not found:[/red] {code}")
        raise typer.Exit(1)
    except ApiError as e:
        err_console.print(f"[red]Lookup failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] Tracking [cyan]{tender.code}[/cyan] - {tender.name or ''}")
    console.print(f"[dim]Status:[/dim] {tender.status}")


@app.command("list")
def list_tenders(user_id: int = USER_OPTION) -> None:
    """List the tenders a user tracks."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import TenderRepository

    open_store(load_config())

    with get_session() as session:
        tenders = TenderRepository(session).list_for_user(user_id)

        if not tenders:
            console.print("[dim]No tenders tracked. Add one with:[/dim] tenderwatch tenders add <code>")
            return

        table = Table(title="Tracked Tenders", show_header=True, header_style="bold magenta")
        table.add_column("Code", style="cyan")
        table.add_column("Name", max_width=50)
        table.add_column("Status")
        table.add_column("Closing", justify="right")
        table.add_column("Total", justify="right")

        for tender in tenders:
            table.add_row(
                tender.code,
                tender.name or "",
                tender.status,
                _format_date(tender.closing_date),
                _format_money(tender.total_amount),
            )

    console.print(table)


@app.command("show")
def show_tender(
    code: str = typer.Argument(..., help="Tender code"),
    user_id: int = USER_OPTION,
) -> None:
    """Show a tracked tender and its stored orders."""
    from tenderwatch.core.normalize import normalize_code
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import OrderRepository, TenderRepository

    open_store(load_config())
    code = normalize_code(code)

    with get_session() as session:
        tender = TenderRepository(session).get(code, user_id)
        if tender is None:
            err_console.print(f"[red]Tender not tracked:[/red] {code}")
            raise typer.Exit(1)

        console.print(f"[bold cyan]{tender.code}[/bold cyan] {tender.name or ''}")
        console.print(f"[dim]Status:[/dim] {tender.status}")
        console.print(f"[dim]Organization:[/dim] {tender.issuing_org or '-'}")
        console.print(f"[dim]Closing date:[/dim] {_format_date(tender.closing_date)}")
        console.print(f"[dim]Estimated amount:[/dim] {_format_money(tender.estimated_amount)}")
        if tender.line or tender.institution is not None:
            institution = tender.institution.name if tender.institution is not None else "-"
            console.print(f"[dim]Assigned:[/dim] {institution}, line {tender.line or '-'}")
        console.print()

        orders = OrderRepository(session).list_for_tender(code)
        if not orders:
            console.print("[dim]No purchase orders stored.[/dim]")
            return

        table = Table(title="Purchase Orders", show_header=True, header_style="bold magenta")
        table.add_column("Code", style="cyan")
        table.add_column("Supplier")
        table.add_column("Status")
        table.add_column("Sent", justify="right")
        table.add_column("Amount", justify="right")

        for order in orders:
            table.add_row(
                order.code,
                order.supplier_name,
                order.status,
                _format_date(order.sent_date),
                _format_money(order.amount),
            )

    console.print(table)


@app.command("remove")
def remove_tender(
    code: str = typer.Argument(..., help="Tender code"),
    user_id: int = USER_OPTION,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Stop tracking a tender. Stored orders are kept."""
    from tenderwatch.core.normalize import normalize_code
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import TenderRepository

    if not force and not typer.confirm(f"Stop tracking '{code}'?"):
        raise typer.Abort()

    open_store(load_config())
    with get_session() as session:
        deleted = TenderRepository(session).delete(normalize_code(code), user_id)

    if not deleted:
        err_console.print(f"[red]Tender not tracked:[/red] {code}")
        raise typer.Exit(1)
    console.print(f"[red]x[/red] Removed tender: {code}")


@app.command("refresh")
def refresh_tender(code: str = typer.Argument(..., help="Tender code")) -> None:
    """Resync one tender's status and details from the API."""
    from tenderwatch.core.client import ApiError
    from tenderwatch.core.orchestrator import TenderNotFoundError, open_runtime

    config = load_config()

    async def _refresh():
        async with open_runtime(config) as runtime:
            return await runtime.tracking.refresh_tender(code)

    try:
        updated = asyncio.run(_refresh())
    except (TenderNotFoundError, ApiError) as e:
        err_console.print(f"[red]Refresh failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] Refreshed {code} ({updated} tracked rows)")


@app.command("refresh-all")
def refresh_all_tenders() -> None:
    """Resync every tracked tender."""
    from tenderwatch.core.orchestrator import open_runtime

    config = load_config()

    async def _refresh_all():
        async with open_runtime(config) as runtime:
            return await runtime.tracking.refresh_all_tenders()

    results = asyncio.run(_refresh_all())
    if not results:
        console.print("[dim]No tenders tracked.[/dim]")
        return

    for result in results:
        if result.ok:
            console.print(f"  [green]OK[/green] {result.code}")
        else:
            console.print(f"  [red]x[/red] {result.code}: {result.error}")

    ok = sum(1 for r in results if r.ok)
    console.print(f"\nRefreshed {ok}/{len(results)} tenders")


@app.command("assign")
def assign_tender(
    code: str = typer.Argument(..., help="Tender code"),
    institution_id: Optional[int] = typer.Option(None, "--institution", "-i", help="Institution id"),
    line: Optional[str] = typer.Option(None, "--line", "-l", help="Product line"),
    user_id: int = USER_OPTION,
) -> None:
    """Assign a tracked tender to an institution and product line."""
    from tenderwatch.core.orchestrator import InstitutionNotFoundError, TenderNotFoundError, TrackingService
    from tenderwatch.persistence.db import get_session

    open_store(load_config())
    tracking = TrackingService(get_session, client=None)

    try:
        tracking.assign(code, user_id, institution_id, line)
    except TenderNotFoundError:
        err_console.print(f"[red]Tender not tracked:[/red] {code}")
        raise typer.Exit(1)
    except InstitutionNotFoundError:
        err_console.print(
            f"[red]No institution with id {institution_id}.[/red] List them with: tenderwatch institutions list"
        )
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] Assigned {code}")


@app.command("set-data")
def set_contract_data(
    code: str = typer.Argument(..., help="Tender code"),
    total_amount: Optional[float] = typer.Option(None, "--total", "-t", help="Authorized contract amount"),
    due_date: Optional[datetime] = typer.Option(None, "--due", help="Contract due date (YYYY-MM-DD)"),
    user_id: int = USER_OPTION,
) -> None:
    """Set the contract amount and due date used for the balance."""
    from tenderwatch.core.orchestrator import TenderNotFoundError, TrackingService
    from tenderwatch.persistence.db import get_session

    open_store(load_config())
    tracking = TrackingService(get_session, client=None)

    try:
        tracking.set_contract_data(code, user_id, total_amount, due_date)
    except TenderNotFoundError:
        err_console.print(f"[red]Tender not tracked:[/red] {code}")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] Updated contract data for {code}")


@app.command("balance")
def show_balance(
    code: str = typer.Argument(..., help="Tender code"),
    user_id: int = USER_OPTION,
) -> None:
    """Show the remaining balance of a tender's authorized amount."""
    from tenderwatch.core.balance import BalanceService
    from tenderwatch.core.orchestrator import TenderNotFoundError
    from tenderwatch.persistence.db import get_session

    config = load_config()
    open_store(config)

    try:
        balance = BalanceService(get_session, config.supplier_names).for_tender(code, user_id)
    except TenderNotFoundError:
        err_console.print(f"[red]Tender not tracked:[/red] {code}")
        raise typer.Exit(1)

    console.print(f"[bold]Balance for[/bold] [cyan]{code}[/cyan]")
    console.print(f"  Total:   {_format_money(balance.total_amount)}")
    console.print(f"  Ordered: {_format_money(balance.ordered_amount)} ({balance.order_count} orders)")
    console.print(f"  Balance: {_format_money(balance.balance)}")
    if balance.percentage is not None:
        console.print(f"  Remaining: {balance.percentage:.1f}%")
    else:
        console.print("[dim]  No contract amount set. Use:[/dim] tenderwatch tenders set-data <code> --total <amount>")


@app.command("detect-orders")
def detect_orders(
    code: str = typer.Argument(..., help="Tender code"),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Abort the scan after this many seconds",
    ),
) -> None:
    """Scan the last months for purchase orders issued against a tender."""
    from tenderwatch.core.client import ApiError
    from tenderwatch.core.orchestrator import ScanInProgressError, open_runtime

    config = load_config()
    setup_cli_logging(config)

    async def _detect():
        async with open_runtime(config) as runtime:
            return await asyncio.wait_for(runtime.engine.discover_orders(code), timeout)

    console.print(f"[bold]Scanning orders for[/bold] [cyan]{code}[/cyan] [dim](this can take several minutes)[/dim]")
    try:
        orders = asyncio.run(_detect())
    except ScanInProgressError:
        err_console.print(f"[yellow]A scan for {code} is already running[/yellow]")
        raise typer.Exit(1)
    except asyncio.TimeoutError:
        err_console.print(f"[red]Scan timed out after {timeout:g}s[/red]")
        raise typer.Exit(1)
    except ApiError as e:
        err_console.print(f"[red]Scan failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] Found {len(orders)} orders")
    for order in orders:
        console.print(f"  [cyan]{order.code}[/cyan] {order.supplier_name} {_format_money(order.amount)} [dim]{order.status}[/dim]")


@app.command("add-orders")
def add_orders(
    tender_code: str = typer.Argument(..., help="Tender code the orders belong to"),
    codes: list[str] = typer.Argument(..., help="Purchase order codes"),
) -> None:
    """Attach purchase orders to a tender by their codes."""
    from tenderwatch.core.orchestrator import open_runtime

    config = load_config()

    async def _add():
        async with open_runtime(config) as runtime:
            return await runtime.tracking.add_orders_by_code(codes, tender_code)

    added = asyncio.run(_add())
    console.print(f"[green]OK[/green] Stored {len(added)}/{len(codes)} orders for {tender_code}")


@app.command("export")
def export_tenders(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="File to write (default: stdout)"),
    user_id: int = USER_OPTION,
) -> None:
    """Export a user's tenders and their orders as JSON."""
    import orjson

    from tenderwatch.core.orchestrator import TrackingService
    from tenderwatch.persistence.db import get_session

    open_store(load_config())
    data = TrackingService(get_session, client=None).export_data(user_id)
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)

    if output is None:
        typer.echo(payload.decode("utf-8"))
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(payload)
    console.print(f"[green]OK[/green] Exported {len(data['tenders'])} tenders to {output}")


@app.command("import")
def import_tenders(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="File written by 'tenders export'"),
    user_id: int = USER_OPTION,
) -> None:
    """Import tenders and orders; orders already stored are skipped."""
    import orjson

    from tenderwatch.core.orchestrator import SyncFormatError, TrackingService
    from tenderwatch.persistence.db import get_session

    try:
        document = orjson.loads(source.read_bytes())
    except orjson.JSONDecodeError as e:
        err_console.print(f"[red]Not valid JSON:[/red] {e}")
        raise typer.Exit(1)

    open_store(load_config())
    try:
        result = TrackingService(get_session, client=None).import_data(document, user_id)
    except SyncFormatError as e:
        err_console.print(f"[red]Import rejected:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] Imported {result.tenders} tenders")
    console.print(f"  Orders: {result.orders_new} new, {result.orders_skipped} already stored")
    if result.orders_failed:
        console.print(f"  [yellow]{result.orders_failed} orders could not be stored[/yellow]")
