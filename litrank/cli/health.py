"""Health and serve commands."""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from litrank.cli.utils import display_info, handle_errors, load_config
from litrank.health.checks import PROBE_URLS, CheckStatus, HealthChecker, HealthStatus

_STATUS_COLORS = {
    CheckStatus.PASS: typer.colors.GREEN,
    CheckStatus.WARN: typer.colors.YELLOW,
    CheckStatus.FAIL: typer.colors.RED,
}


@handle_errors
def health_command(
    probe: bool = typer.Option(False, "--probe", help="Also probe providers over HTTP"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config YAML"
    ),
):
    """Run health checks once and print the results."""
    config = load_config(config_path)
    providers = config.router.enabled_providers or []
    if probe and not providers:
        providers = list(PROBE_URLS)

    checker = HealthChecker(
        cache_dir=Path(config.cache.cache_dir) if config.cache.enabled else None,
        probe_providers=providers if probe else (),
    )
    report = asyncio.run(checker.check_all())

    for check in report.checks:
        typer.secho(
            f"[{check.status.value}] {check.name}: {check.message}",
            fg=_STATUS_COLORS[check.status],
        )
    typer.echo(f"Overall: {report.status.value}")
    if report.status == HealthStatus.UNHEALTHY:
        raise typer.Exit(code=1)


@handle_errors
def serve_command(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config YAML"
    ),
):
    """Start the HTTP server (search, health and metrics)."""
    from litrank.health.server import run_server
    from litrank.orchestration.search_pipeline import LiteratureSearchService

    config = load_config(config_path)
    display_info(f"Starting server at http://{host}:{port}")
    run_server(LiteratureSearchService.from_config(config), host=host, port=port)
