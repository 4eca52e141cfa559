"""
feedmover feeds / validate - Inspect the feed registry.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from feedmover.config.loader import load_config
from feedmover.core.initialization import initialize
from feedmover.core.registry import FeedRegistry
from feedmover.exceptions import FeedMoverError, InitializationError

console = Console()


def list_feeds(
    env: str | None = typer.Option(None, "--env", "-e", help="Environment config overlay"),
    project_dir: Path | None = typer.Option(None, "--project-dir", "-d", help="Project directory"),
) -> None:
    """List registered feeds."""
    project_dir = project_dir or Path.cwd()
    try:
        config = load_config(project_dir, env=env)
        registry = FeedRegistry.from_config(config.data)
    except (FileNotFoundError, ValueError, FeedMoverError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    table = Table(title=f"Feeds ({len(registry)})", show_header=True)
    table.add_column("Id", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Pattern")
    table.add_column("Rename", style="yellow")
    table.add_column("Subpath", style="dim")
    table.add_column("Destinations", style="magenta")
    table.add_column("Workflow", style="dim")
    for feed in registry:
        table.add_row(
            feed.id,
            feed.source,
            feed.source_pattern,
            feed.rename_template,
            feed.destination_subpath,
            ", ".join(feed.destinations) if feed.destinations else "(environment)",
            feed.workflow_name or "-",
        )
    console.print(table)


def validate(
    env: str | None = typer.Option(None, "--env", "-e", help="Environment class (overrides host matching)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path | None = typer.Option(None, "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Check configuration, environment, credentials, templates and connections
    without contacting any remote host.
    """
    try:
        context = initialize(project_dir or Path.cwd(), env=env, verbose=verbose)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    env_info = context.environment
    console.print(
        f"[green]Configuration OK[/green]: {len(context.registry)} feed(s), "
        f"{len(context.transports.list())} connection(s), "
        f"environment [bold]{env_info.environment_class}[/bold] "
        f"-> {', '.join(env_info.destinations) or 'no default destinations'}"
    )
