"""
Main CLI entry point.
"""

import typer

from apigee_discovery import __version__
from apigee_discovery.cli import once, run, validate


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"apigee-discovery version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="apigee-discovery",
    help="apigee-discovery - Discover Apigee API assets and keep a catalog in sync",
    add_completion=True,
)

app.add_typer(run.app, name="run")
app.add_typer(once.app, name="once")
app.add_typer(validate.app, name="validate")


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
    apigee-discovery - Discover Apigee API assets and keep a catalog in sync.

    Run 'apigee-discovery <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
