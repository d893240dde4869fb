"""
Logging setup for TenderWatch.

Console output goes through Rich; the log file gets one JSON object per
line (orjson). Scan code logs through ``ScanLogger`` so every line carries
the tender, supplier or run it belongs to.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, MutableMapping

import orjson

if TYPE_CHECKING:
    from rich.console import Console

ROOT_LOGGER = "tenderwatch"

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "context", None) or {}


# =============================================================================
# Formatters and Handlers
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record, scan context merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context_of(record),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode("utf-8")


class RichConsoleHandler(logging.Handler):
    """Writes records to a Rich console on stderr, tagged with their tender or supplier."""

    def __init__(self, console: "Console | None" = None, level: int = logging.NOTSET):
        super().__init__(level)
        if console is None:
            from rich.console import Console

            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            from rich.markup import escape

            context = _context_of(record)
            tag = context.get("tender") or context.get("supplier")
            text = escape(self.format(record))
            style = LEVEL_STYLES.get(record.levelno)
            if style:
                text = f"[{style}]{text}[/{style}]"
            if tag:
                text = f"[cyan]{escape(f'[{tag}]')}[/cyan] {text}"
            self.console.print(text, highlight=False)
            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``tenderwatch`` logger tree.

    Replaces any handlers from an earlier call. The file handler, when
    configured, always records DEBUG and above.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if log_file else numeric_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console: logging.Handler
    if rich_console:
        console = RichConsoleHandler()
        console.setFormatter(logging.Formatter("%(message)s"))
    else:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(PLAIN_FORMAT))
    console.setLevel(numeric_level)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
        root.addHandler(file_handler)

    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``tenderwatch`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


# =============================================================================
# Scan Context
# =============================================================================


class ScanLogger(logging.LoggerAdapter):
    """Adapter attaching scan context (tender, supplier, run_id, ...) to records.

    Context is passed to handlers as ``record.context``; keys with a None
    value are dropped.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {k: v for k, v in context.items() if v is not None})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**self.extra, **extra.get("context", {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context: Any) -> "ScanLogger":
        """Copy of this adapter with more context."""
        return ScanLogger(self.logger, **{**self.extra, **context})


def get_contextual_logger(name: str | None = None, **context: Any) -> ScanLogger:
    return ScanLogger(get_logger(name), **context)
