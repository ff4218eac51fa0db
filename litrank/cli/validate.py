"""Validate command for configuration files."""

from pathlib import Path

import typer

from litrank.cli.utils import display_error, display_success, handle_errors
from litrank.services.config_manager import ConfigManager
from litrank.utils.exceptions import ConfigValidationError


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    try:
        config = ConfigManager(config_path=str(config_path)).load_config()
    except (FileNotFoundError, ConfigValidationError) as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid")
    typer.echo(f" - cache: {'enabled' if config.cache.enabled else 'disabled'}")
    typer.echo(f" - neural ranking: {'enabled' if config.embedding.enabled else 'disabled'}")
    typer.echo(f" - global timeout: {config.router.global_timeout_seconds}s")
