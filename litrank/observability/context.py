"""Correlation ID context for tracing one search across provider calls.

The ID lives in a ContextVar, so it follows every task spawned by the
source router without being passed explicitly.

Usage:
    with correlation_id_context() as search_id:
        response = await service.search(request)
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current context, generating a UUID if needed."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    _correlation_id_var.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def correlation_id_context(corr_id: Optional[str] = None) -> Generator[str, None, None]:
    """Scope a correlation ID; the previous value is restored on exit.

    Args:
        corr_id: Optional correlation ID. If None, generates UUID.

    Yields:
        The correlation ID being used in this context.
    """
    if corr_id is None:
        corr_id = str(uuid.uuid4())

    token = _correlation_id_var.set(corr_id)
    try:
        yield corr_id
    finally:
        _correlation_id_var.reset(token)
