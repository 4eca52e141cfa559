"""
feedmover unclaimed - Show (or purge) staged files no feed claims.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from feedmover.core.initialization import initialize
from feedmover.exceptions import InitializationError, RunLockError

console = Console()


def unclaimed(
    purge: bool = typer.Option(False, "--purge", help="Delete quarantined files"),
    env: str | None = typer.Option(None, "--env", "-e", help="Environment class (overrides host matching)"),
    project_dir: Path | None = typer.Option(None, "--project-dir", "-d", help="Project directory"),
) -> None:
    """List files that were fetched but matched no feed."""
    try:
        context = initialize(project_dir or Path.cwd(), env=env)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if purge:
        try:
            with context.lock:
                removed = context.staging.purge_unclaimed()
        except RunLockError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        context.run_log.append(f"Operator purged {len(removed)} unclaimed file(s): {', '.join(removed) or '-'}")
        console.print(f"Purged {len(removed)} unclaimed file(s)")
        return

    files = context.staging.list_unclaimed(list(context.registry))
    if not files:
        console.print("No unclaimed files")
        return

    table = Table(
        title=f"Unclaimed files ({len(files)})",
        caption=f"Quarantine: {context.staging.unclaimed_dir}",
        show_header=True,
    )
    table.add_column("Source", style="green")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Staged", style="dim")
    for sf in files:
        table.add_row(
            sf.source or "-",
            sf.original_name,
            str(sf.size_bytes),
            f"{sf.discovered_at:%Y-%m-%d %H:%M:%S}",
        )
    console.print(table)
