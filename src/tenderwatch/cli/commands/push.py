"""
Push token registration commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import err_console, load_config, open_store

console = Console()

app = typer.Typer(
    help="Manage device push tokens",
    no_args_is_help=True,
)


@app.command("register")
def register_token(
    token: str = typer.Argument(..., help="Expo push token, e.g. ExponentPushToken[xxxx]"),
    user_id: int = typer.Option(1, "--user", "-u", help="User id"),
    platform: Optional[str] = typer.Option(None, "--platform", "-p", help="ios or android"),
) -> None:
    """Register (or replace) a user's push token."""
    from tenderwatch.core.notify import is_valid_token
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import PushTokenRepository

    if not is_valid_token(token):
        err_console.print(f"[red]Not an Expo push token:[/red] {escape(token)}")
        raise typer.Exit(1)

    open_store(load_config())
    with get_session() as session:
        PushTokenRepository(session).register(user_id, token, platform)
    console.print(f"[green]OK[/green] Registered push token for user {user_id}")


@app.command("unregister")
def unregister_token(user_id: int = typer.Option(1, "--user", "-u", help="User id")) -> None:
    """Remove a user's push token."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import PushTokenRepository

    open_store(load_config())
    with get_session() as session:
        removed = PushTokenRepository(session).unregister(user_id)

    if not removed:
        err_console.print(f"[yellow]No token registered for user {user_id}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[red]x[/red] Removed push token for user {user_id}")


@app.command("list")
def list_tokens() -> None:
    """List registered push tokens."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import PushTokenRepository

    open_store(load_config())
    with get_session() as session:
        tokens = PushTokenRepository(session).list_all()

        if not tokens:
            console.print("[dim]No push tokens registered.[/dim]")
            return

        table = Table(title="Push Tokens", show_header=True, header_style="bold magenta")
        table.add_column("User", justify="right")
        table.add_column("Token", style="cyan")
        table.add_column("Platform")
        table.add_column("Registered", justify="right")

        for row in tokens:
            table.add_row(
                str(row.user_id),
                escape(row.token),
                row.platform or "[dim]-[/dim]",
                row.registered_at.strftime("%Y-%m-%d %H:%M"),
            )

    console.print(table)
