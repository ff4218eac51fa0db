import asyncio
import time
from typing import Dict, Optional

import structlog

from litrank.models.config import RateLimitConfig
from litrank.utils.cancellation import CancellationToken, cancellable_sleep

logger = structlog.get_logger()


class RateLimiter:
    """Token bucket rate limiter for one provider.

    The bucket refills at `requests_per_second` up to `burst` tokens.
    Refill and withdrawal happen under a lock so concurrent callers
    never consume the same token twice.
    """

    def __init__(self, requests_per_second: float = 1.0, burst: int = 1):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.rate = requests_per_second
        self.burst = burst
        self.tokens = float(burst)
        self.last_update = time.monotonic()
        self.total_waited_seconds = 0.0
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(float(self.burst), self.tokens + elapsed * self.rate)
        self.last_update = now

    async def acquire(
        self,
        requester_id: str = "system",
        cancellation: Optional[CancellationToken] = None,
    ) -> float:
        """Take one token, waiting if necessary.

        Returns:
            Seconds spent waiting for the token.
        """
        async with self._lock:
            self._refill()
            if self.tokens >= 1:
                self.tokens -= 1
                return 0.0

            # Reserve the next token so later callers queue behind us
            wait_time = (1 - self.tokens) / self.rate
            self.tokens -= 1

        logger.debug("rate_limit_wait", requester_id=requester_id, wait_seconds=round(wait_time, 3))
        await cancellable_sleep(wait_time, cancellation)
        self.total_waited_seconds += wait_time
        return wait_time


class RateLimiterRegistry:
    """One RateLimiter per provider id, created on first use."""

    def __init__(
        self,
        default: Optional[RateLimitConfig] = None,
        overrides: Optional[Dict[str, RateLimitConfig]] = None,
    ):
        self.default = default or RateLimitConfig()
        self.overrides = dict(overrides or {})
        self._limiters: Dict[str, RateLimiter] = {}

    def configure(self, provider_id: str, config: RateLimitConfig) -> None:
        """Set limits for a provider unless an explicit override exists."""
        if provider_id in self._limiters or provider_id in self.overrides:
            return
        self.overrides[provider_id] = config

    def get(self, provider_id: str) -> RateLimiter:
        limiter = self._limiters.get(provider_id)
        if limiter is None:
            config = self.overrides.get(provider_id, self.default)
            limiter = RateLimiter(config.requests_per_second, config.burst)
            self._limiters[provider_id] = limiter
        return limiter
