"""
Scheduler commands.
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from . import err_console, load_config, setup_cli_logging, state

console = Console()

app = typer.Typer(
    help="Run the daily scan and tender refresh on a schedule",
    no_args_is_help=True,
)


@app.command("list")
def list_schedules() -> None:
    """Show the configured schedules."""
    from tenderwatch.core.scheduler import SchedulerService

    config = load_config()
    service = SchedulerService(config, state["config_path"])

    table = Table(title="Schedules", show_header=True, header_style="bold magenta")
    table.add_column("Job", style="cyan")
    table.add_column("Trigger")

    for job_name, trigger in service.schedules().items():
        table.add_row(job_name, str(trigger))

    console.print(table)
    console.print(f"[dim]Timezone:[/dim] {config.scheduler.timezone}")


@app.command("run-now")
def run_schedule_now(
    name: str = typer.Argument(..., help="Job name (daily-order-scan or tender-refresh)"),
) -> None:
    """Trigger a scheduled job to run immediately."""
    from tenderwatch.core.scheduler import SchedulerService

    config = load_config()
    setup_cli_logging(config)
    service = SchedulerService(config, state["config_path"])

    console.print(f"[bold]Triggering job:[/bold] {name}")
    try:
        result = asyncio.run(service.trigger_now(name))
    except ValueError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] {name} finished ({result})")


@app.command("start")
def start_scheduler() -> None:
    """Start the background scheduler service.

    Runs as a foreground process. Use Ctrl+C to stop.
    """
    from tenderwatch.core.scheduler import SchedulerService

    config = load_config()
    if not config.scheduler.enabled:
        err_console.print("[yellow]Scheduler disabled in configuration[/yellow]")
        raise typer.Exit(1)

    setup_cli_logging(config)
    console.print("[bold]Starting scheduler service...[/bold]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    try:
        asyncio.run(SchedulerService(config, state["config_path"]).start())
    except KeyboardInterrupt:
        console.print("[dim]Scheduler stopped[/dim]")
