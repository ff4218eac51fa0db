"""List the providers a search would fan out to."""

from pathlib import Path
from typing import Optional

import typer

from litrank.cli.utils import handle_errors, load_config
from litrank.services.providers.registry import build_default_registry


@handle_errors
def providers_command(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config YAML"
    ),
):
    """Show registered providers by tier with their rate limits."""
    config = load_config(config_path)
    registry = build_default_registry(config)
    for pid in registry.provider_ids:
        info = registry.info(pid)
        key_note = " (api key required)" if info.requires_api_key else ""
        typer.echo(
            f"{pid:<18} {info.tier.value:<10} {info.requests_per_second:g} req/s, "
            f"burst {info.burst}{key_note}"
        )
