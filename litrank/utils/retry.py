"""Retry handler for governed provider calls.

Features:
- Exponential backoff with jitter for generic transient failures
- Provider-supplied retry-after honored exactly (no jitter, no cap)
- Cancellation-aware: no attempt is scheduled after the token fires
- Built-in structured logging for observability
"""

import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from litrank.models.config import RetryConfig
from litrank.utils.cancellation import CancellationToken, cancellable_sleep
from litrank.utils.exceptions import ProviderError, ProviderRateLimited

logger = structlog.get_logger(__name__)


T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Timeouts, 5xx and explicit rate-limit signals are transient."""
    return isinstance(error, ProviderError) and bool(error.retryable)


class RetryContext:
    """Tracks retry state for one governed call."""

    def __init__(self) -> None:
        self.total_attempts: int = 0
        self.total_retries: int = 0
        self.total_delay_seconds: float = 0.0
        self.last_error: Optional[Exception] = None

    def record_attempt(self) -> None:
        self.total_attempts += 1

    def record_retry(self, delay: float, error: Exception) -> None:
        self.total_retries += 1
        self.total_delay_seconds += delay
        self.last_error = error


class RetryHandler:
    """Async retry handler with exponential backoff and jitter.

    - Exponential backoff: delay = base * 2^attempt
    - Jitter: +/- jitter_factor randomization
    - Max delay cap: bounds generic backoff only
    - Retry-after: used verbatim when the provider supplies it
    """

    def __init__(self, config: RetryConfig, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self._rng = rng or random.Random()

    def calculate_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before the next attempt.

        Args:
            attempt: Attempt that just failed (0-indexed)
            retry_after: Provider-supplied wait in seconds, if any

        Returns:
            `retry_after` exactly when given, otherwise capped
            exponential backoff with jitter.
        """
        if retry_after is not None and retry_after >= 0:
            return float(retry_after)

        base_delay = self.config.base_delay_seconds * (2**attempt)
        jitter = base_delay * self.config.jitter_factor
        delay = base_delay + self._rng.uniform(-jitter, jitter)
        return max(0.0, min(delay, self.config.max_delay_seconds))

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        cancellation: Optional[CancellationToken] = None,
        context: Optional[RetryContext] = None,
        should_retry: Callable[[BaseException], bool] = is_retryable,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ) -> T:
        """Run `func`, retrying transient failures.

        Raises:
            SearchCancelled: If cancelled before an attempt or during backoff.
            Exception: The last error once attempts are exhausted or the
                error is not retryable.
        """
        context = context or RetryContext()

        for attempt in range(self.config.max_attempts):
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            context.record_attempt()
            try:
                return await func()
            except Exception as e:
                if not should_retry(e) or attempt + 1 >= self.config.max_attempts:
                    raise

                retry_after = e.retry_after if isinstance(e, ProviderRateLimited) else None
                delay = self.calculate_delay(attempt, retry_after)

                logger.warning(
                    "retry_attempt",
                    provider=getattr(e, "provider", None),
                    attempt=attempt + 1,
                    max_attempts=self.config.max_attempts,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    delay_seconds=round(delay, 3),
                    retry_after=retry_after,
                )
                context.record_retry(delay, e)
                if on_retry is not None:
                    on_retry(attempt + 1, e, delay)

                await cancellable_sleep(delay, cancellation)

        raise RuntimeError("Retry loop completed without result or exception")  # pragma: no cover
