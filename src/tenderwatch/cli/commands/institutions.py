"""
Institution commands: the buyers tenders are assigned to.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config, open_store

console = Console()

app = typer.Typer(
    help="Manage institutions and product lines",
    no_args_is_help=True,
)


@app.command("add")
def add_institution(name: str = typer.Argument(..., help="Institution name")) -> None:
    """Register an institution."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import InstitutionRepository

    name = name.strip()
    if not name:
        err_console.print("[red]The institution name is required[/red]")
        raise typer.Exit(1)

    open_store(load_config())
    with get_session() as session:
        institution, created = InstitutionRepository(session).create(name)
        institution_id = institution.id

    if created:
        console.print(f"[green]OK[/green] Added institution {institution_id}: {name}")
    else:
        console.print(f"[yellow]Already registered[/yellow] as {institution_id}: {name}")


@app.command("list")
def list_institutions() -> None:
    """List institutions by name."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import InstitutionRepository

    open_store(load_config())

    with get_session() as session:
        institutions = InstitutionRepository(session).list_all()
        if not institutions:
            console.print("[dim]No institutions. Add one with:[/dim] tenderwatch institutions add <name>")
            return

        table = Table(title="Institutions", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Name")
        for institution in institutions:
            table.add_row(str(institution.id), institution.name)

    console.print(table)


@app.command("remove")
def remove_institution(
    institution_id: int = typer.Argument(..., help="Institution id"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete an institution. Its tenders stay tracked, unassigned."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import InstitutionRepository

    if not force and not typer.confirm(f"Delete institution {institution_id}?"):
        raise typer.Abort()

    open_store(load_config())
    with get_session() as session:
        deleted = InstitutionRepository(session).delete(institution_id)

    if not deleted:
        err_console.print(f"[red]No institution with id {institution_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[red]x[/red] Removed institution {institution_id}")


@app.command("tenders")
def institution_tenders(
    institution_id: int = typer.Argument(..., help="Institution id"),
    user_id: int = typer.Option(1, "--user", "-u", help="User id owning the tracked tenders"),
) -> None:
    """List a user's tenders assigned to an institution, by product line."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import InstitutionRepository

    open_store(load_config())

    with get_session() as session:
        repo = InstitutionRepository(session)
        institution = repo.get(institution_id)
        if institution is None:
            err_console.print(f"[red]No institution with id {institution_id}[/red]")
            raise typer.Exit(1)

        tenders = repo.tenders(institution_id, user_id)
        if not tenders:
            console.print(f"[dim]No tenders assigned to {institution.name}.[/dim]")
            return

        table = Table(title=institution.name, show_header=True, header_style="bold magenta")
        table.add_column("Line")
        table.add_column("Code", style="cyan")
        table.add_column("Name", max_width=50)
        table.add_column("Status")
        for tender in tenders:
            table.add_row(tender.line or "[dim]-[/dim]", tender.code, tender.name or "", tender.status)

    console.print(table)


@app.command("lines")
def list_lines() -> None:
    """Show the configured product lines."""
    config = load_config()
    for line in config.product_lines:
        console.print(f"  {line}")
