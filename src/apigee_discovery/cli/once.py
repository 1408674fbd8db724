"""
apigee-discovery once - One dependency-ordered discovery pass.
"""

import asyncio
from pathlib import Path

import typer
from rich.table import Table

from apigee_discovery.agent import DiscoveryAgent
from apigee_discovery.cli.common import console, load_settings
from apigee_discovery.discovery.catalog import MemoryCatalog
from apigee_discovery.discovery.models import ResourceKind

app = typer.Typer(name="once", help="Run every discovery job once", invoke_without_command=True)


@app.callback()
def once(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Run portals, specs, proxies, products, apis and validator registration once
    and print what was discovered.
    """
    if ctx.invoked_subcommand is not None:
        return

    _, settings = load_settings(project_dir, env, verbose)
    catalog = MemoryCatalog()
    agent = DiscoveryAgent(settings, consumer=catalog)
    outcomes = asyncio.run(agent.run_once())

    job_table = Table(title="Jobs", show_header=True)
    job_table.add_column("Job", style="cyan")
    job_table.add_column("Result")
    job_table.add_column("Error", style="dim")
    for job_id in agent.scheduler.jobs:
        outcome = outcomes.get(job_id)
        if outcome is None:
            job_table.add_row(job_id, "[yellow]skipped[/yellow]", "")
        elif outcome.success:
            job_table.add_row(job_id, "[green]ok[/green]", "")
        else:
            job_table.add_row(job_id, "[red]failed[/red]", str(outcome.error))
    console.print(job_table)

    catalog_table = Table(title="Catalog", show_header=True)
    catalog_table.add_column("Kind", style="cyan")
    catalog_table.add_column("Entries", justify="right")
    for kind in ResourceKind:
        catalog_table.add_row(kind.value, str(catalog.count(kind)))
    console.print(catalog_table)

    if any(not o.success for o in outcomes.values()):
        raise typer.Exit(1)
