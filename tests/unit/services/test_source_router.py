"""Unit tests for the concurrent source router."""

import asyncio
import time
from typing import List, Optional

import pytest

from litrank.models.config import GovernorConfig, RateLimitConfig, RetryConfig, RouterConfig
from litrank.models.paper import Paper
from litrank.models.provider import OutcomeKind, ProviderInfo, ProviderTier
from litrank.models.search import SearchRequest
from litrank.services.governor import ResilienceGovernor
from litrank.services.providers.base import SearchConstraints, SourceAdapter
from litrank.services.providers.registry import ProviderRegistry
from litrank.services.source_router import SourceRouter
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderHttpError, SearchCancelled


class FakeAdapter(SourceAdapter):
    """Adapter returning canned papers after an optional delay."""

    def __init__(self, name: str, count: int = 0, delay: float = 0.0, error=None):
        self._name = name
        self.count = count
        self.delay = delay
        self.error = error
        self.last_constraints: Optional[SearchConstraints] = None
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query, constraints, cancellation=None) -> List[Paper]:
        self.calls += 1
        self.last_constraints = constraints
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [
            Paper(paper_id=f"{self._name}-{i}", title=f"{self._name} paper {i}", source_provider=self._name)
            for i in range(self.count)
        ]


def info(pid: str, tier: ProviderTier) -> ProviderInfo:
    return ProviderInfo(
        provider_id=pid, display_name=pid, tier=tier, requests_per_second=1000, burst=100
    )


def make_router(adapters_with_tiers, **router_overrides) -> SourceRouter:
    registry = ProviderRegistry(catalogue={})
    for adapter, tier in adapters_with_tiers:
        registry.register(adapter, info(adapter.name, tier))
    governor = ResilienceGovernor(
        GovernorConfig(
            call_timeout_seconds=10.0,
            retry=RetryConfig(max_attempts=1),
            default_rate_limit=RateLimitConfig(requests_per_second=1000, burst=100),
        )
    )
    settings = {"global_timeout_seconds": 5.0, "early_return_grace_seconds": 0.05}
    settings.update(router_overrides)
    return SourceRouter(registry, governor, RouterConfig(**settings))


class TestFanOut:
    """Tests for concurrent fan-out."""

    @pytest.mark.asyncio
    async def test_all_providers_succeed(self):
        a = FakeAdapter("a", count=3)
        b = FakeAdapter("b", count=2)
        router = make_router([(b, ProviderTier.AGGREGATOR), (a, ProviderTier.GOOD)])
        papers, report = await router.search(SearchRequest(query="bats"))

        # Tier order: good before aggregator
        assert [p.source_provider for p in papers] == ["a"] * 3 + ["b"] * 2
        assert report.collected_by_provider == {"a": 3, "b": 2}
        assert report.failed_providers == []
        assert not report.deadline_reached

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self):
        adapters = [(FakeAdapter(f"p{i}", count=1, delay=0.2), ProviderTier.GOOD) for i in range(4)]
        router = make_router(adapters)
        start = time.monotonic()
        papers, _ = await router.search(SearchRequest(query="bats"))
        assert len(papers) == 4
        assert time.monotonic() - start < 0.6

    @pytest.mark.asyncio
    async def test_constraints_forwarded(self):
        a = FakeAdapter("a", count=1)
        router = make_router([(a, ProviderTier.GOOD)], per_provider_limit=7)
        await router.search(SearchRequest(query="bats", year_from=2010, year_to=2015))
        assert a.last_constraints == SearchConstraints(year_from=2010, year_to=2015, limit=7)

    @pytest.mark.asyncio
    async def test_source_allowlist(self):
        a = FakeAdapter("a", count=1)
        b = FakeAdapter("b", count=1)
        router = make_router([(a, ProviderTier.GOOD), (b, ProviderTier.GOOD)])
        papers, report = await router.search(SearchRequest(query="bats", sources=["b"]))
        assert [p.source_provider for p in papers] == ["b"]
        assert a.calls == 0
        assert [c.provider for c in report.contributions] == ["b"]


class TestPartialFailure:
    """Tests for provider failures and deadlines."""

    @pytest.mark.asyncio
    async def test_slow_provider_cut_off_by_deadline(self):
        """Test A(50) + slow B + C(30) returns 80 papers with B timed out."""
        a = FakeAdapter("a", count=50)
        b = FakeAdapter("b", count=10, delay=30.0)
        c = FakeAdapter("c", count=30)
        router = make_router(
            [(a, ProviderTier.GOOD), (b, ProviderTier.AGGREGATOR), (c, ProviderTier.PREPRINT)],
            global_timeout_seconds=0.3,
        )
        start = time.monotonic()
        papers, report = await router.search(SearchRequest(query="bats"))

        assert time.monotonic() - start < 2.0
        assert len(papers) == 80
        assert report.deadline_reached
        outcomes = {c.provider: c for c in report.contributions}
        assert outcomes["a"].outcome == OutcomeKind.OK
        assert outcomes["c"].outcome == OutcomeKind.OK
        assert outcomes["b"].outcome == OutcomeKind.TIMEOUT
        assert outcomes["b"].collected == 0
        assert outcomes["b"].error == "cut off by search deadline"
        assert report.failed_providers == ["b"]

    @pytest.mark.asyncio
    async def test_early_return_once_viable_tiers_finish(self):
        """Test the grace period, not the global deadline, bounds latency."""
        good = FakeAdapter("good", count=5)
        slow = FakeAdapter("slow", count=5, delay=10.0)
        router = make_router(
            [(good, ProviderTier.GOOD), (slow, ProviderTier.AGGREGATOR)],
            global_timeout_seconds=20.0,
            early_return_grace_seconds=0.1,
        )
        start = time.monotonic()
        papers, report = await router.search(SearchRequest(query="bats"))
        assert time.monotonic() - start < 2.0
        assert len(papers) == 5
        assert report.failed_providers == ["slow"]

    @pytest.mark.asyncio
    async def test_provider_error_recorded(self):
        a = FakeAdapter("a", count=2)
        b = FakeAdapter("b", error=ProviderHttpError("b", 404))
        router = make_router([(a, ProviderTier.GOOD), (b, ProviderTier.GOOD)])
        papers, report = await router.search(SearchRequest(query="bats"))
        assert len(papers) == 2
        failed = report.contributions[1]
        assert failed.provider == "b"
        assert failed.outcome == OutcomeKind.HTTP_ERROR
        assert failed.collected == 0
        assert failed.error

    @pytest.mark.asyncio
    async def test_all_providers_failed(self):
        a = FakeAdapter("a", error=ProviderHttpError("a", 500))
        router = make_router([(a, ProviderTier.GOOD)])
        papers, report = await router.search(SearchRequest(query="bats"))
        assert papers == []
        assert report.all_failed


class TestCancellation:
    """Tests for request cancellation."""

    @pytest.mark.asyncio
    async def test_pre_cancelled_token(self):
        a = FakeAdapter("a", count=1)
        router = make_router([(a, ProviderTier.GOOD)])
        token = CancellationToken()
        token.cancel("gone")
        with pytest.raises(SearchCancelled):
            await router.search(SearchRequest(query="bats"), token)
        assert a.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_mid_flight_stops_quickly(self):
        a = FakeAdapter("a", count=1, delay=10.0)
        router = make_router([(a, ProviderTier.GOOD)])
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel, "client disconnected")

        start = time.monotonic()
        with pytest.raises(SearchCancelled, match="client disconnected"):
            await router.search(SearchRequest(query="bats"), token)
        assert time.monotonic() - start < 2.0
        assert router.governor.get_stats()["global_bulkhead"]["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_outer_task_cancel_stops_provider_calls(self):
        slow = FakeAdapter("slow", count=1, delay=10.0)
        router = make_router([(slow, ProviderTier.GOOD)])

        search = asyncio.create_task(router.search(SearchRequest(query="bats")))
        await asyncio.sleep(0.05)
        search.cancel()
        with pytest.raises(asyncio.CancelledError):
            await search

        provider_tasks = [t for t in asyncio.all_tasks() if t.get_name().startswith("provider:")]
        assert provider_tasks == []
        await asyncio.sleep(0.1)
        assert slow.calls == 1
        assert router.governor.get_stats()["global_bulkhead"]["in_flight"] == 0
