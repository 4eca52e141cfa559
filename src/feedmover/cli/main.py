"""
Main CLI entry point.
"""

import typer

from feedmover import __version__
from feedmover.cli import feeds, run, unclaimed


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"feedmover version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="feedmover",
    help="Feedmover - scheduled, registry-driven file transfer between remote hosts",
    add_completion=False,
)

# Register subcommands
app.command(name="run")(run.run)
app.command(name="feeds")(feeds.list_feeds)
app.command(name="validate")(feeds.validate)
app.command(name="unclaimed")(unclaimed.unclaimed)


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    Feedmover - scheduled, registry-driven file transfer between remote hosts.

    Run 'feedmover <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
