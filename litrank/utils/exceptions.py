"""Exception hierarchy for the literature search pipeline.

Provider errors carry an `OutcomeKind` so the resilience governor can
classify every failed call without inspecting messages. All exceptions
inherit from LitRankError so callers can catch pipeline errors in one
place when needed.
"""

from typing import Optional

from litrank.models.provider import OutcomeKind


class LitRankError(Exception):
    """Base exception for all litrank errors

    ```python
    try:
        response = await service.search(request)
    except LitRankError as e:
        logger.error("search_failed", error=str(e))
    ```
    """

    pass


class ProviderError(LitRankError):
    """Base for errors raised by a single provider call.

    Never escapes the governor: it is converted to a classified
    ProviderResult and then to a zero-contribution audit entry.
    """

    kind: OutcomeKind = OutcomeKind.HTTP_ERROR
    retryable: bool = False

    def __init__(self, provider: str, message: str = "") -> None:
        self.provider = provider
        super().__init__(message or f"{provider}: {self.kind.value}")


class ProviderTimeout(ProviderError):
    """Provider did not answer in time

    Raised when:
    - aiohttp client timeout fires
    - The per-call timeout enforced by the governor elapses
    """

    kind = OutcomeKind.TIMEOUT
    retryable = True


class ProviderRateLimited(ProviderError):
    """Provider signalled throttling.

    Raised when:
    - API returns 429 status
    - API returns 403 used as a throttling signal (arXiv)

    `retry_after` is the provider-supplied wait in seconds, if any.
    """

    kind = OutcomeKind.RATE_LIMITED
    retryable = True

    def __init__(
        self, provider: str, message: str = "", retry_after: Optional[float] = None
    ) -> None:
        super().__init__(provider, message)
        self.retry_after = retry_after


class ProviderHttpError(ProviderError):
    """Provider answered with an unexpected HTTP status.

    Status 0 means the transport failed before a response arrived.
    Only transport failures and server-side errors (5xx) are retried.
    """

    kind = OutcomeKind.HTTP_ERROR

    def __init__(self, provider: str, status: int, message: str = "") -> None:
        super().__init__(provider, message or f"{provider}: HTTP {status}")
        self.status = status

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status == 0 or self.status >= 500


class ProviderParseError(ProviderError):
    """Provider payload could not be decoded into papers."""

    kind = OutcomeKind.PARSE_ERROR


class CircuitOpen(ProviderError):
    """Circuit breaker OPEN - provider marked unavailable.

    Raised when:
    - Provider has exceeded its consecutive failure threshold
    - Cool-down window has not elapsed yet
    - A half-open probe is already in flight
    """

    kind = OutcomeKind.CIRCUIT_OPEN

    def __init__(
        self, provider: str, message: str = "", remaining_seconds: float = 0.0
    ) -> None:
        super().__init__(provider, message)
        self.remaining_seconds = remaining_seconds


class ResourceExhausted(ProviderError):
    """Bulkhead capacity not available within the acquire timeout."""

    kind = OutcomeKind.RESOURCE_EXHAUSTED

    def __init__(self, provider: str, scope: str, message: str = "") -> None:
        super().__init__(provider, message or f"{provider}: {scope} bulkhead full")
        self.scope = scope


class ValidationError(LitRankError):
    """Search request rejected before any provider call.

    Raised when:
    - Query is empty or longer than 500 characters
    - Request contains unknown fields
    - Year range or pagination values are invalid
    """

    def __init__(self, message: str, errors: Optional[list] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class PipelineDegraded(LitRankError):
    """Neural stage fell back to lexical-only ranking.

    Recorded as a warning in the audit report. The request still succeeds.
    """

    def __init__(self, reason: str, tier: str = "lexical_fallback") -> None:
        super().__init__(f"pipeline degraded to {tier}: {reason}")
        self.reason = reason
        self.tier = tier


class SearchCancelled(LitRankError):
    """The caller cancelled the request; partial results are discarded."""

    pass


class ConfigValidationError(LitRankError):
    """Configuration file could not be loaded or validated."""

    pass


class EmbeddingError(LitRankError):
    """Embedding provider failed to produce vectors."""

    pass


class CacheError(LitRankError):
    """Query cache could not be read or written."""

    pass
