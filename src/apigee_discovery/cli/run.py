"""
apigee-discovery run - Run the discovery agent until interrupted.
"""

import asyncio
from pathlib import Path

import typer

from apigee_discovery.agent import DiscoveryAgent
from apigee_discovery.cli.common import console, load_settings
from apigee_discovery.observability.metrics import MetricsRegistry
from apigee_discovery.utils.logging import get_logger

logger = get_logger("apigee_discovery.cli.run")

app = typer.Typer(name="run", help="Run the discovery agent", invoke_without_command=True)


@app.callback()
def run(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Poll the platform on the configured intervals until SIGINT/SIGTERM.
    """
    if ctx.invoked_subcommand is not None:
        return

    config, settings = load_settings(project_dir, env, verbose)

    metrics = MetricsRegistry(enabled=bool(config.get("metrics.enabled", True)))
    port = config.get("metrics.port")
    if port:
        metrics.start_http_server(int(port))
        logger.info(f"Serving metrics on port {port}")

    agent = DiscoveryAgent(settings, metrics=metrics)
    console.print(f"[bold blue]apigee-discovery[/bold blue] organization [cyan]{settings.organization}[/cyan]")
    asyncio.run(agent.run())
