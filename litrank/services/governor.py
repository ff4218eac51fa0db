"""Resilience governor wrapping every provider call.

Each governed call goes through, per attempt:
1. Circuit breaker check (fails fast with CircuitOpen, no budget spent)
2. Token-bucket rate limiter for the provider
3. Global and per-provider bulkheads (ResourceExhausted when full)
4. The call itself under a per-call timeout

Transient failures are retried by RetryHandler. The outcome is always
returned as a classified ProviderResult; provider errors never escape.
"""

import asyncio
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Generic, Optional, TypeVar

import structlog

from litrank.models.config import GovernorConfig, RateLimitConfig
from litrank.models.provider import OutcomeKind
from litrank.observability.metrics import (
    BULKHEAD_IN_FLIGHT,
    CIRCUIT_STATE,
    CIRCUIT_STATE_VALUES,
    PROVIDER_CALLS,
    PROVIDER_LATENCY,
    PROVIDER_RETRIES,
)
from litrank.utils.cancellation import CancellationToken
from litrank.utils.circuit_breaker import CircuitBreakerRegistry
from litrank.utils.exceptions import (
    CircuitOpen,
    ProviderError,
    ProviderParseError,
    ProviderTimeout,
    ResourceExhausted,
    SearchCancelled,
)
from litrank.utils.rate_limiter import RateLimiterRegistry
from litrank.utils.retry import RetryContext, RetryHandler

logger = structlog.get_logger()

T = TypeVar("T")

# Failures that say nothing about the provider's health
_LOCAL_OUTCOMES = {OutcomeKind.CIRCUIT_OPEN, OutcomeKind.RESOURCE_EXHAUSTED}


@dataclass
class ProviderResult(Generic[T]):
    """Classified outcome of one governed call."""

    provider: str
    outcome: OutcomeKind
    value: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 0
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == OutcomeKind.OK


class Bulkhead:
    """Concurrency limit with atomic occupancy counters.

    Counters are guarded by a plain lock and never awaited on, so
    release stays safe inside cancellation cleanup.
    """

    def __init__(self, scope: str, limit: int):
        self.scope = scope
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak_in_flight = 0
        self.rejected = 0

    async def acquire(self, timeout: float) -> bool:
        """Take a slot, waiting at most `timeout` seconds (0 = fail fast)."""
        try:
            if timeout <= 0:
                if self._semaphore.locked():
                    raise asyncio.TimeoutError()
                await self._semaphore.acquire()
            else:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            with self._lock:
                self.rejected += 1
            return False

        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            in_flight = self.in_flight
        BULKHEAD_IN_FLIGHT.labels(scope=self.scope).set(in_flight)
        return True

    def release(self) -> None:
        with self._lock:
            self.in_flight -= 1
            in_flight = self.in_flight
        self._semaphore.release()
        BULKHEAD_IN_FLIGHT.labels(scope=self.scope).set(in_flight)

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "limit": self.limit,
                "in_flight": self.in_flight,
                "peak_in_flight": self.peak_in_flight,
                "rejected": self.rejected,
            }


class ResilienceGovernor:
    """Per-provider rate limit, bulkhead, retry and circuit breaker."""

    def __init__(
        self,
        config: Optional[GovernorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or GovernorConfig()
        self.breakers = CircuitBreakerRegistry(self.config.circuit_breaker, clock=clock)
        self.rate_limiters = RateLimiterRegistry(
            self.config.default_rate_limit, self.config.rate_limits
        )
        self.retry_handler = RetryHandler(self.config.retry)
        self._global_bulkhead = Bulkhead("global", self.config.bulkhead.max_concurrent_global)
        self._provider_bulkheads: Dict[str, Bulkhead] = {}

    def register_provider(self, provider_id: str, rate_limit: RateLimitConfig) -> None:
        """Use a provider's published rate limit unless config overrides it."""
        self.rate_limiters.configure(provider_id, rate_limit)

    def _bulkhead_for(self, provider_id: str) -> Bulkhead:
        bulkhead = self._provider_bulkheads.get(provider_id)
        if bulkhead is None:
            bulkhead = Bulkhead(provider_id, self.config.bulkhead.max_concurrent_per_provider)
            self._provider_bulkheads[provider_id] = bulkhead
        return bulkhead

    @asynccontextmanager
    async def _slots(self, provider_id: str) -> AsyncIterator[None]:
        timeout = self.config.bulkhead.acquire_timeout_seconds
        provider_bulkhead = self._bulkhead_for(provider_id)

        if not await provider_bulkhead.acquire(timeout):
            raise ResourceExhausted(provider_id, "provider")
        try:
            if not await self._global_bulkhead.acquire(timeout):
                raise ResourceExhausted(provider_id, "global")
            try:
                yield
            finally:
                self._global_bulkhead.release()
        finally:
            provider_bulkhead.release()

    async def execute(
        self,
        provider_id: str,
        fn: Callable[[], Awaitable[T]],
        cancellation: Optional[CancellationToken] = None,
    ) -> ProviderResult[T]:
        """Run `fn` under the provider's resilience policy.

        Returns:
            ProviderResult with outcome OK and the value, or the classified
            failure. Cancellation via the token yields outcome CANCELLED;
            task cancellation (asyncio.CancelledError) propagates.
        """
        breaker = self.breakers.get_or_create(provider_id)
        limiter = self.rate_limiters.get(provider_id)
        context = RetryContext()
        start = time.monotonic()

        async def attempt() -> T:
            probe = breaker.check_or_raise()
            try:
                return await guarded_call()
            finally:
                if probe:
                    breaker.release_probe()

        async def guarded_call() -> T:
            await limiter.acquire(provider_id, cancellation)
            async with self._slots(provider_id):
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                try:
                    value = await asyncio.wait_for(
                        fn(), timeout=self.config.call_timeout_seconds
                    )
                except asyncio.TimeoutError:
                    breaker.record_failure()
                    raise ProviderTimeout(
                        provider_id,
                        f"{provider_id}: no response within {self.config.call_timeout_seconds}s",
                    )
                except ProviderError as e:
                    if e.kind not in _LOCAL_OUTCOMES:
                        breaker.record_failure()
                    raise
                except (SearchCancelled, asyncio.CancelledError):
                    raise
                except Exception as e:
                    breaker.record_failure()
                    logger.exception("provider_unexpected_error", provider=provider_id)
                    raise ProviderParseError(provider_id, f"{provider_id}: {e}") from e
            breaker.record_success()
            return value

        def on_retry(attempt_number: int, error: Exception, delay: float) -> None:
            PROVIDER_RETRIES.labels(provider=provider_id).inc()

        try:
            value = await self.retry_handler.execute(
                attempt, cancellation=cancellation, context=context, on_retry=on_retry
            )
            result: ProviderResult[T] = ProviderResult(
                provider=provider_id, outcome=OutcomeKind.OK, value=value
            )
        except ProviderError as e:
            result = ProviderResult(provider=provider_id, outcome=e.kind, error=e)
        except SearchCancelled as e:
            result = ProviderResult(provider=provider_id, outcome=OutcomeKind.CANCELLED, error=e)
        except asyncio.CancelledError:
            logger.info(
                "provider_call_cancelled",
                provider=provider_id,
                attempts=context.total_attempts,
                latency_ms=round((time.monotonic() - start) * 1000, 1),
            )
            raise

        result.attempts = context.total_attempts
        result.latency_ms = (time.monotonic() - start) * 1000
        self._record(result, breaker.state.value)
        return result

    def _record(self, result: ProviderResult[Any], circuit_state: str) -> None:
        PROVIDER_CALLS.labels(provider=result.provider, outcome=result.outcome.value).inc()
        PROVIDER_LATENCY.labels(provider=result.provider).observe(result.latency_ms / 1000)
        CIRCUIT_STATE.labels(provider=result.provider).set(CIRCUIT_STATE_VALUES[circuit_state])

        if result.ok:
            logger.info(
                "provider_call_completed",
                provider=result.provider,
                outcome=result.outcome.value,
                attempts=result.attempts,
                latency_ms=round(result.latency_ms, 1),
            )
        else:
            logger.warning(
                "provider_call_failed",
                provider=result.provider,
                outcome=result.outcome.value,
                attempts=result.attempts,
                latency_ms=round(result.latency_ms, 1),
                error=str(result.error),
                circuit_state=circuit_state,
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "global_bulkhead": self._global_bulkhead.get_stats(),
            "provider_bulkheads": {
                name: bulkhead.get_stats() for name, bulkhead in self._provider_bulkheads.items()
            },
            "circuit_breakers": self.breakers.get_all_stats(),
        }
