"""CLI command modules and the helpers they share."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console

if TYPE_CHECKING:
    from tenderwatch.core.config import AppConfig

err_console = Console(stderr=True)

# Set by the --config option of the root command
state: dict[str, Path | None] = {"config_path": None}


def load_config() -> "AppConfig":
    """Load the app configuration, exiting with an error message if invalid."""
    from tenderwatch.core.config import ConfigError, load_app_config

    try:
        return load_app_config(state["config_path"])
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)


def open_store(config: "AppConfig") -> None:
    """Point the process-wide session at the configured database."""
    from tenderwatch.persistence.db import init_db

    init_db(config.database.url, echo=config.database.echo)


def setup_cli_logging(config: "AppConfig") -> None:
    from tenderwatch.core.logging import setup_logging

    config.ensure_directories()
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )


__all__ = [
    "err_console",
    "load_config",
    "open_store",
    "setup_cli_logging",
    "state",
]
