"""Search command: run one literature search and print the page."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from litrank.cli.utils import (
    display_error,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
)
from litrank.models.search import SearchResponse
from litrank.orchestration.search_pipeline import LiteratureSearchService
from litrank.utils.exceptions import SearchCancelled, ValidationError


@handle_errors
def search_command(
    query: str = typer.Argument(..., help="Search query"),
    sources: Optional[List[str]] = typer.Option(
        None, "--source", "-s", help="Restrict to a provider (repeatable)"
    ),
    year_from: Optional[int] = typer.Option(None, "--year-from", help="Earliest year"),
    year_to: Optional[int] = typer.Option(None, "--year-to", help="Latest year"),
    target_size: Optional[int] = typer.Option(
        None, "--target-size", "-n", help="Papers to keep after sampling"
    ),
    purpose: Optional[str] = typer.Option(None, "--purpose", "-p", help="Research purpose"),
    page: int = typer.Option(1, "--page", help="Result page"),
    limit: int = typer.Option(20, "--limit", help="Papers per page"),
    as_json: bool = typer.Option(False, "--json", help="Print the full response as JSON"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config YAML"
    ),
):
    """Search every configured provider and rank the results."""
    config = load_config(config_path)

    payload: Dict[str, Any] = {"query": query, "page": page, "limit": limit}
    optional = {
        "sources": sources or None,
        "year_from": year_from,
        "year_to": year_to,
        "target_size": target_size,
        "purpose": purpose,
    }
    payload.update({k: v for k, v in optional.items() if v is not None})

    service = LiteratureSearchService.from_config(config)
    try:
        response = asyncio.run(service.search(payload))
    except ValidationError as e:
        display_error(f"Invalid request: {e}")
        raise typer.Exit(code=2)
    except SearchCancelled as e:
        display_warning(f"Search cancelled: {e}")
        raise typer.Exit(code=130)
    finally:
        service.close()

    if as_json:
        typer.echo(json.dumps(response.model_dump(mode="json"), indent=2))
        return
    _display_response(response)


def _display_response(response: SearchResponse) -> None:
    report = response.metadata
    display_success(
        f"{response.total} papers ranked (page {response.page}, "
        f"showing {len(response.papers)})"
    )
    for i, paper in enumerate(response.papers, start=(response.page - 1) * response.limit + 1):
        year = paper.year or "n.d."
        quality = f"{paper.quality_score:.0f}" if paper.quality_score is not None else "-"
        typer.echo(f"{i:>3}. {paper.title} ({year}) [{paper.source_provider}, quality {quality}]")

    display_info("\nProviders:")
    for c in report.providers:
        line = f" - {c.provider}: {c.outcome.value}, collected {c.collected}, kept {c.final_count}"
        if c.error:
            line += f" ({c.error})"
        typer.echo(line)

    if report.neural_tier is not None:
        typer.echo(f"Relevance tier: {report.neural_tier.value}")
    if report.cache_hit:
        typer.echo("Served from cache")
    for warning in report.warnings:
        display_warning(f"! {warning}")
