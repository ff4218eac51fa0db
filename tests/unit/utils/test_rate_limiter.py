"""Unit tests for the token bucket rate limiter."""

import pytest

from litrank.models.config import RateLimitConfig
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import SearchCancelled
from litrank.utils.rate_limiter import RateLimiter, RateLimiterRegistry


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(requests_per_second=0)

    @pytest.mark.asyncio
    async def test_burst_tokens_are_immediate(self):
        limiter = RateLimiter(requests_per_second=1.0, burst=3)
        waits = [await limiter.acquire() for _ in range(3)]
        assert waits == [0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_waits_once_bucket_is_empty(self):
        limiter = RateLimiter(requests_per_second=20.0, burst=1)
        assert await limiter.acquire() == 0.0
        waited = await limiter.acquire()
        assert 0.0 < waited <= 0.05 + 1e-6
        assert limiter.total_waited_seconds == pytest.approx(waited)

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_wait(self):
        limiter = RateLimiter(requests_per_second=0.01, burst=1)
        await limiter.acquire()
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(SearchCancelled):
            await limiter.acquire(cancellation=token)


class TestRateLimiterRegistry:
    """Tests for RateLimiterRegistry."""

    def test_default_limits(self):
        registry = RateLimiterRegistry(RateLimitConfig(requests_per_second=2.0, burst=4))
        limiter = registry.get("openalex")
        assert limiter.rate == 2.0
        assert limiter.burst == 4
        assert registry.get("openalex") is limiter

    def test_configure_sets_provider_limits(self):
        registry = RateLimiterRegistry()
        registry.configure("arxiv", RateLimitConfig(requests_per_second=0.34))
        assert registry.get("arxiv").rate == 0.34

    def test_explicit_override_wins_over_configure(self):
        registry = RateLimiterRegistry(
            overrides={"arxiv": RateLimitConfig(requests_per_second=5.0)}
        )
        registry.configure("arxiv", RateLimitConfig(requests_per_second=0.34))
        assert registry.get("arxiv").rate == 5.0
