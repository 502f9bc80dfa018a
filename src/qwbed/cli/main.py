"""qwbed CLI Main Entry Point

qwbed - declarative test bed runner.
Renders templates and launches process matrices described by a test bed
configuration file.

Usage:
    qwbed run bed.conf                  # run every commands block
    qwbed run bed.conf -c smoke         # run [commands.smoke] only
    qwbed run bed.conf --report r.json  # write a JSON run report
    qwbed check bed.conf                # parse and validate only
    qwbed version                       # show version
"""

from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import List, Optional

import typer

from qwbed._version import __version__
from qwbed.ast import load_config
from qwbed.config import load_settings
from qwbed.exceptions import BedError
from qwbed.progress import ProgressTracker, make_display
from qwbed.runtime.runner import BedRunner

from .utils import console, fail, print_summary, save_report, setup_logging


app = typer.Typer(help="Declarative test bed runner.", no_args_is_help=True)


@app.command()
def run(
    config: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Test bed configuration file."
    ),
    commands: Optional[List[str]] = typer.Option(
        None,
        "-c",
        "--commands",
        help="Commands block to run (repeatable). 'commands' selects the unnamed block.",
    ),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Override the [output] directory."
    ),
    settings_file: Optional[Path] = typer.Option(
        None, "--settings", exists=True, dir_okay=False, help="Path to qwbed.yaml."
    ),
    report_file: Optional[Path] = typer.Option(
        None, "--report", help="Write a JSON run report to this file."
    ),
    progress: bool = typer.Option(False, "--progress", help="Show loop progress bars."),
    fail_on_error: bool = typer.Option(
        False, "--fail-on-error", help="Exit 1 if any process did not exit cleanly."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output."),
) -> None:
    """Run globals, templates and the selected commands blocks."""
    setup_logging(verbose)

    try:
        bed = load_config(config)
        settings = load_settings(bed.base_dir, settings_file)
    except BedError as exc:
        fail(exc)

    display = make_display() if progress else None
    tracker = ProgressTracker(settings.resolve_progress_file(bed.base_dir), display)
    runner = BedRunner(bed, settings, output_dir=output, console=console, tracker=tracker)

    try:
        with display if display is not None else nullcontext():
            report = runner.run(commands)
    except BedError as exc:
        save_report(runner.report, report_file)
        fail(exc)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted, live processes killed[/yellow]")
        save_report(runner.report, report_file)
        raise typer.Exit(code=130)

    save_report(report, report_file)
    if verbose or report.failed:
        print_summary(report)

    if fail_on_error and report.failed:
        typer.secho(
            f"{len(report.failed)} process(es) did not exit cleanly",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.command()
def check(
    config: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Test bed configuration file."
    ),
) -> None:
    """Parse and validate a configuration without running it."""
    setup_logging(False)
    try:
        bed = load_config(config)
    except BedError as exc:
        fail(exc)

    console.print(f"[green]OK[/green] {config}")
    if bed.output:
        console.print(f"[dim]Output:[/dim] {bed.output}")
    for path in bed.search_paths:
        console.print(f"[dim]Templates from:[/dim] {path}")
    console.print(f"[dim]Globals:[/dim] {len(bed.globals)} statement(s)")
    for template in bed.templates:
        console.print(f"[dim]Template:[/dim] {template.name}")
    for block in bed.commands:
        console.print(f"[dim]Commands:[/dim] {block.label}")


@app.command()
def version() -> None:
    """Show version and exit."""
    typer.echo(f"qwbed {__version__}")


if __name__ == "__main__":
    app()
