"""
Shared CLI helpers: configuration loading and logging setup.
"""

from pathlib import Path

import typer
from rich.console import Console

from apigee_discovery.config import ApigeeConfig, Config, load_config
from apigee_discovery.exceptions import ConfigurationError
from apigee_discovery.utils.logging import setup_logging_from_config

console = Console()


def load_settings(project_dir: Path, env: str | None, verbose: bool = False) -> tuple[Config, ApigeeConfig]:
    """
    Load and validate configuration, then configure logging from it.

    Exits with status 1 on a configuration error.
    """
    try:
        config = load_config(project_dir, env)
        settings = ApigeeConfig.from_config(config)
        settings.validate()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if verbose:
        logging_section = config.data.get("logging") or {}
        config.data["logging"] = {**logging_section, "level": "DEBUG"}
    setup_logging_from_config(config.data, project_dir=project_dir, console=console)
    return config, settings
