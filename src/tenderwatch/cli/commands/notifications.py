"""
Notification inbox commands.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config, open_store

console = Console()

app = typer.Typer(
    help="Read and manage notifications",
    no_args_is_help=True,
)


@app.command("list")
def list_notifications(
    unread: bool = typer.Option(False, "--unread", help="Only unread notifications"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum notifications to show"),
) -> None:
    """List notifications, newest first."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import NotificationRepository

    open_store(load_config())

    with get_session() as session:
        repo = NotificationRepository(session)
        notifications = repo.list(unread_only=unread, limit=limit)
        unread_count = repo.count_unread()

        if not notifications:
            console.print("[dim]No notifications.[/dim]")
            return

        table = Table(
            title=f"Notifications ({unread_count} unread)",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("ID", justify="right")
        table.add_column("", justify="center")
        table.add_column("Title", style="cyan")
        table.add_column("Message")
        table.add_column("Created", justify="right")

        for notification in notifications:
            table.add_row(
                str(notification.id),
                "" if notification.read else "[yellow]*[/yellow]",
                notification.title,
                notification.message,
                notification.created_at.strftime("%Y-%m-%d %H:%M"),
            )

    console.print(table)


@app.command("read")
def mark_read(notification_id: int = typer.Argument(..., help="Notification id")) -> None:
    """Mark one notification as read."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import NotificationRepository

    open_store(load_config())
    with get_session() as session:
        found = NotificationRepository(session).mark_read(notification_id)

    if not found:
        err_console.print(f"[red]Notification not found:[/red] {notification_id}")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] Marked {notification_id} as read")


@app.command("read-all")
def mark_all_read() -> None:
    """Mark every notification as read."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import NotificationRepository

    open_store(load_config())
    with get_session() as session:
        count = NotificationRepository(session).mark_all_read()
    console.print(f"[green]OK[/green] Marked {count} notifications as read")


@app.command("delete")
def delete_notification(notification_id: int = typer.Argument(..., help="Notification id")) -> None:
    """Delete one notification."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import NotificationRepository

    open_store(load_config())
    with get_session() as session:
        found = NotificationRepository(session).delete(notification_id)

    if not found:
        err_console.print(f"[red]Notification not found:[/red] {notification_id}")
        raise typer.Exit(1)
    console.print(f"[red]x[/red] Deleted notification {notification_id}")


@app.command("clear")
def clear_notifications(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete every notification."""
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import NotificationRepository

    if not force and not typer.confirm("Delete all notifications?"):
        raise typer.Abort()

    open_store(load_config())
    with get_session() as session:
        count = NotificationRepository(session).delete_all()
    console.print(f"[red]x[/red] Deleted {count} notifications")
