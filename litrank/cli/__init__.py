"""litrank CLI.

Usage:
    python -m litrank.cli search "primate social cognition" --purpose survey_construction
    python -m litrank.cli providers
    python -m litrank.cli validate config/litrank.yaml
    python -m litrank.cli health --probe
    python -m litrank.cli serve --port 8000
"""

import typer

from litrank.cli.health import health_command, serve_command
from litrank.cli.providers import providers_command
from litrank.cli.search import search_command
from litrank.cli.validate import validate_command

app = typer.Typer(help="litrank: concurrent literature search and relevance ranking")

app.command(name="search")(search_command)
app.command(name="validate")(validate_command)
app.command(name="health")(health_command)
app.command(name="serve")(serve_command)
app.command(name="providers")(providers_command)

__all__ = [
    "app",
    "search_command",
    "validate_command",
    "health_command",
    "serve_command",
    "providers_command",
]
