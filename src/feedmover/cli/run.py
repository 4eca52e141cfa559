"""
feedmover run - Process feeds once.

Meant to be invoked by a scheduler (cron, systemd timer) on every tick.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from feedmover.core.api import run as run_feeds
from feedmover.core.registry import ALL_FEEDS
from feedmover.core.types import RunSummary

console = Console()


def run(
    feeds: list[str] | None = typer.Argument(None, help=f"Feed ids to process (default: {ALL_FEEDS})"),
    env: str | None = typer.Option(None, "--env", "-e", help="Environment class (overrides host matching)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path | None = typer.Option(None, "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Fetch, rename, deliver and archive files for the selected feeds.

    Per-feed failures are reported but do not change the exit status; only a
    run that could not start exits non-zero.
    """
    summary = run_feeds(feeds, project_dir=project_dir or Path.cwd(), env=env, verbose=verbose)
    if summary.exit_code != 0:
        typer.echo("Error: run did not start; see log for details", err=True)
        raise typer.Exit(summary.exit_code)
    _print_summary(summary)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title=f"Run {summary.run_timestamp:%Y-%m-%d %H:%M:%S}", show_header=True)
    table.add_column("Feed", style="cyan")
    table.add_column("Considered", justify="right")
    table.add_column("Transferred", justify="right", style="green")
    table.add_column("Unchanged", justify="right", style="dim")
    table.add_column("Status")
    for outcome in summary.outcomes:
        status = "[green]ok[/green]" if outcome.succeeded else f"[red]failed[/red] {outcome.error_detail or ''}"
        table.add_row(
            outcome.feed_id,
            str(outcome.files_considered),
            str(outcome.files_transferred),
            str(outcome.skipped_unchanged),
            status,
        )
    console.print(table)
    if summary.unclaimed:
        console.print(
            f"[yellow]{len(summary.unclaimed)} unclaimed file(s):[/yellow] "
            + ", ".join(sf.original_name for sf in summary.unclaimed)
        )
