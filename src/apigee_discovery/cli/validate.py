"""
apigee-discovery validate - Check configuration without contacting the platform.
"""

from pathlib import Path

import typer
from rich.table import Table

from apigee_discovery.cli.common import console, load_settings

app = typer.Typer(name="validate", help="Validate configuration", invoke_without_command=True)


@app.callback()
def validate(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Load and validate configuration; exit 1 with the error message if invalid.
    """
    if ctx.invoked_subcommand is not None:
        return

    _, settings = load_settings(project_dir, env)

    table = Table(title="Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("organization", settings.organization)
    table.add_row("url", f"{settings.url}/{settings.api_version}")
    table.add_row("dataURL", settings.data_url)
    table.add_row("authURL", settings.auth_url)
    table.add_row("developerID", settings.developer_id)
    table.add_row("filter", settings.filter or "[dim](none)[/dim]")
    table.add_row("specFilter", settings.spec_filter or "[dim](none)[/dim]")
    table.add_row("pageSize", str(settings.page_size))
    for kind in ("proxy", "spec", "product", "portal", "api"):
        table.add_row(f"intervals.{kind}", f"{getattr(settings.intervals, kind):g}s")
    console.print(table)
    console.print("[green]Configuration is valid[/green]")
