"""Shared CLI utilities."""

import functools
from pathlib import Path
from typing import Callable, Optional, TypeVar

import structlog
import typer

from litrank.models.config import AppConfig
from litrank.observability.logging import configure_logging
from litrank.services.config_manager import ConfigManager
from litrank.utils.exceptions import ConfigValidationError

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load configuration and configure logging from it.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    manager = ConfigManager(config_path=str(config_path) if config_path else None)
    try:
        config = manager.load_config()
    except (FileNotFoundError, ConfigValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    configure_logging(level=config.logging.level, json_output=config.logging.json_output)
    return config


def handle_errors(func: F) -> F:
    """Turn unexpected exceptions into a red message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
