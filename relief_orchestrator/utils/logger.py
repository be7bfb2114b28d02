"""Rich-formatted logging setup."""

from __future__ import annotations

import logging
import sys
from logging.handlers import MemoryHandler
from pathlib import Path

from rich.console import Console
from rich.errors import MarkupError
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text
from rich.theme import Theme

# Custom theme for logging
CUSTOM_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "header": "bold magenta",
        "task": "bold magenta",
        "state": "bold blue",
    }
)

# Global console instance
console = Console(theme=CUSTOM_THEME)

# Startup records held until the log file exists
STARTUP_BUFFER_CAPACITY = 1000


class PlainTextFormatter(logging.Formatter):
    """File formatter that strips rich markup from records logged with markup."""

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "markup", False):
            message = record.getMessage()
            try:
                message = Text.from_markup(message).plain
            except MarkupError:
                pass
            record = logging.makeLogRecord({**record.__dict__, "msg": message, "args": None})
        return super().format(record)


def setup_logging(
    level: int = logging.INFO,
    log_file: str | Path | None = None,
    buffer: bool = False,
) -> None:
    """
    Setup logging with Rich console handler and optional append-only file handler.

    Args:
        level: Logging level
        log_file: File to append log lines to (None = console only)
        buffer: Hold records in memory until a later call adds the log file
    """
    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers, keeping buffered startup records
    pending = [h for h in root_logger.handlers if isinstance(h, MemoryHandler)]
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if handler not in pending:
            handler.close()

    # Rich console handler
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(rich_handler)

    # File handler
    if log_file is not None:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            console.print(f"[warning]Cannot write log file {escape(str(log_file))}: {escape(str(e))}[/warning]")
        else:
            file_handler.setFormatter(
                PlainTextFormatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            root_logger.addHandler(file_handler)
            for memory in pending:
                memory.setTarget(file_handler)
                memory.flush()

    if buffer and log_file is None:
        for memory in pending or [MemoryHandler(capacity=STARTUP_BUFFER_CAPACITY)]:
            root_logger.addHandler(memory)
    else:
        for memory in pending:
            memory.close()

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> "WorkflowLogger":
    """Get a workflow logger with the specified name."""
    return WorkflowLogger(name)


class WorkflowLogger:
    """Logger wrapper with themed helpers for workflow events."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self._logger.error(msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def _markup(self, level: int, msg: str) -> None:
        self._logger.log(level, msg, extra={"markup": True})

    def header(self, msg: str) -> None:
        """Log a section header."""
        self._markup(logging.INFO, f"[header]{escape(msg)}[/header]")

    def success(self, msg: str) -> None:
        """Log success message."""
        self._markup(logging.INFO, f"[success]{escape(msg)}[/success]")

    def failure(self, msg: str) -> None:
        """Log failure message."""
        self._markup(logging.ERROR, f"[error]{escape(msg)}[/error]")

    def state_change(self, name: str, from_state: str, to_state: str) -> None:
        """Log a state transition."""
        self._markup(
            logging.DEBUG,
            f"[task]{escape(name)}[/task]: [state]{from_state}[/state] -> [state]{to_state}[/state]",
        )


def print_banner() -> None:
    """Print application banner."""
    banner = """
+==============================================================+
|                 Relief Workflow Orchestrator                 |
|        Build, deploy and maintain the relief website         |
+==============================================================+
"""
    console.print(banner, style="bold cyan")


def force_utf8_output() -> None:
    """Force UTF-8 console output on Windows."""
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")  # type: ignore
