"""Shared utilities for CLI commands"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from qwbed.models import ProcessState, RunReport

console = Console()

DEBUG_ENV = "QWBED_DEBUG"

_STATE_STYLES = {
    ProcessState.EXITED: "green",
    ProcessState.FAILED: "red",
    ProcessState.KILLED: "yellow",
    ProcessState.TIMED_OUT: "yellow",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the qwbed CLI.

    Log levels:
    - Normal: Only warnings/errors shown
    - Verbose (-v): INFO level - shows spawns, exits and rendered templates
    - Debug (QWBED_DEBUG=1): DEBUG level - shows everything
    """
    debug = bool(os.environ.get(DEBUG_ENV))
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=verbose or debug,
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("qwbed")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False


def fail(error: Exception, exit_code: int = 1) -> NoReturn:
    """Print an error in red and exit."""
    typer.secho(f"Error: {error}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=exit_code)


def save_report(report: RunReport, path: Optional[Path]) -> None:
    if path is None:
        return
    report.save(path)
    console.print(f"[dim]Report:[/dim] {path}")


def print_summary(report: RunReport) -> None:
    """Print a table of every process the run spawned."""
    if not report.processes:
        console.print("[dim]No processes spawned[/dim]")
        return

    table = Table(title="Processes", show_lines=False)
    table.add_column("ID", justify="right")
    table.add_column("Block")
    table.add_column("Command", overflow="fold")
    table.add_column("State")
    table.add_column("Exit", justify="right")
    table.add_column("Time", justify="right")

    for record in report.processes:
        style = _STATE_STYLES.get(record.state, "")
        duration = record.duration
        table.add_row(
            str(record.id),
            record.block,
            " ".join(record.command),
            f"[{style}]{record.state.value}[/{style}]" if style else record.state.value,
            "" if record.exit_code is None else str(record.exit_code),
            "" if duration is None else f"{duration:.2f}s",
        )
    console.print(table)

    if report.timeouts:
        console.print(f"[yellow]{len(report.timeouts)} wait_all timeout(s)[/yellow]")
