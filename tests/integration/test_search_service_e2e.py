"""End-to-end searches through LiteratureSearchService with fake providers."""

import math
from typing import Dict, List

import pytest

from litrank.models.audit import NeuralTier
from litrank.models.config import (
    AppConfig,
    CacheConfig,
    GovernorConfig,
    RateLimitConfig,
    RetryConfig,
    RouterConfig,
)
from litrank.models.paper import Paper
from litrank.models.provider import OutcomeKind, ProviderInfo, ProviderTier
from litrank.orchestration.search_pipeline import LiteratureSearchService, title_similarity
from litrank.services.providers.base import SourceAdapter
from litrank.services.providers.registry import ProviderRegistry
from litrank.services.relevance.embeddings import EmbeddingProvider
from litrank.services.relevance.thresholds import resolve_purpose_profile
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderHttpError, SearchCancelled, ValidationError

QUERY = "bat echolocation"


class StaticAdapter(SourceAdapter):
    """Returns a fixed list of papers, or raises a fixed error."""

    def __init__(self, name: str, papers: List[Paper], error=None):
        self._name = name
        self.papers = papers
        self.error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query, constraints, cancellation=None) -> List[Paper]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.papers)


class KeywordEmbeddings(EmbeddingProvider):
    def __init__(self, similarity: Dict[str, float]):
        self.similarity = similarity

    async def embed(self, text: str) -> List[float]:
        if text == QUERY:
            return [1.0, 0.0]
        s = next((v for k, v in self.similarity.items() if k in text.lower()), 0.0)
        return [s, math.sqrt(1 - s * s)]


def paper(provider: str, pid: str, title: str, doi=None) -> Paper:
    return Paper(
        paper_id=pid,
        title=title,
        doi=doi,
        abstract=f"{title}. Field recordings analysed with acoustic software.",
        year=2020,
        citation_count=12,
        source_provider=provider,
    )


def premium_papers() -> List[Paper]:
    return [
        paper("premium_src", "p1", "Bat echolocation calls in caves", doi="10.1000/calls"),
        paper("premium_src", "p2", "Bat echolocation and prey capture"),
        paper("premium_src", "p3", "Bat echolocation ontogeny in juveniles"),
    ]


def good_papers() -> List[Paper]:
    return [
        paper("good_src", "g1", "Bat echolocation calls in caves", doi="https://doi.org/10.1000/CALLS"),
        paper("good_src", "g2", "Bat echolocation jamming signals"),
        paper("good_src", "g3", "Coral reef bleaching"),
    ]


def info(pid: str, tier: ProviderTier) -> ProviderInfo:
    return ProviderInfo(provider_id=pid, display_name=pid, tier=tier, requests_per_second=1000, burst=100)


def make_service(adapters, cache_dir=None, embedding_provider=None) -> LiteratureSearchService:
    registry = ProviderRegistry(catalogue={})
    for adapter, tier in adapters:
        registry.register(adapter, info(adapter.name, tier))
    config = AppConfig(
        governor=GovernorConfig(
            retry=RetryConfig(max_attempts=1),
            default_rate_limit=RateLimitConfig(requests_per_second=1000, burst=100),
        ),
        router=RouterConfig(global_timeout_seconds=5.0, early_return_grace_seconds=0.5),
        cache=CacheConfig(enabled=cache_dir is not None, cache_dir=str(cache_dir or "unused")),
    )
    return LiteratureSearchService(
        config=config, registry=registry, embedding_provider=embedding_provider
    )


def two_providers():
    return [
        (StaticAdapter("premium_src", premium_papers()), ProviderTier.PREMIUM),
        (StaticAdapter("good_src", good_papers()), ProviderTier.GOOD),
    ]


class TestFullSearch:
    """Collection through report assembly."""

    @pytest.mark.asyncio
    async def test_lexical_only_search(self):
        service = make_service(two_providers())
        response = await service.search({"query": QUERY, "target_size": 50})
        report = response.metadata

        titles = {p.title for p in response.papers}
        assert titles == {
            "Bat echolocation calls in caves",
            "Bat echolocation and prey capture",
            "Bat echolocation ontogeny in juveniles",
            "Bat echolocation jamming signals",
        }
        assert response.total == 4
        assert report.total_collected == 6
        assert report.source_breakdown == {"premium_src": 3, "good_src": 3}
        assert report.deduplicated_count == 5
        assert report.final_count == 4
        assert sum(report.final_breakdown.values()) == report.final_count
        assert report.neural_tier == NeuralTier.LEXICAL_FALLBACK
        assert report.degraded
        assert report.stages[0].name == "collection"
        assert report.stages[-1].name == "diversity_sampling"
        assert not report.cache_hit

    @pytest.mark.asyncio
    async def test_neural_search(self):
        embeddings = KeywordEmbeddings({"bat": 0.9})
        service = make_service(two_providers(), embedding_provider=embeddings)
        response = await service.search({"query": QUERY, "target_size": 50})

        assert response.metadata.neural_tier == NeuralTier.TIER0
        assert not response.metadata.degraded
        assert response.total == 4
        assert all(p.neural_relevance_score == 0.9 for p in response.papers)
        assert all(p.quality_score is not None for p in response.papers)

    @pytest.mark.asyncio
    async def test_citation_impact_uses_field_baseline(self):
        titles = [
            "Bat species ecology in limestone caves",
            "Roost selection and bat species ecology",
            "Island bat species ecology and evolution",
        ]
        adapter = StaticAdapter(
            "premium_src",
            [paper("premium_src", f"b{i}", t) for i, t in enumerate(titles)],
        )
        service = make_service([(adapter, ProviderTier.PREMIUM)])
        response = await service.search({"query": "bat species ecology", "target_size": 50})

        scorer = service.scorer.with_weights(resolve_purpose_profile(None).quality_weights)
        assert response.papers
        for p in response.papers:
            assert p.domain == "biology"
            assert p.quality_score == pytest.approx(scorer.score(p))
            assert p.quality_score != pytest.approx(
                scorer.score(p.model_copy(update={"domain": None}))
            )

    @pytest.mark.asyncio
    async def test_results_are_ranked_and_paginated(self):
        service = make_service(two_providers())
        first = await service.search({"query": QUERY, "target_size": 50, "limit": 3})
        second = await service.search({"query": QUERY, "target_size": 50, "limit": 3, "page": 2})

        assert len(first.papers) == 3
        assert len(second.papers) == 1
        scores = [p.ranking_score for p in first.papers + second.papers]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_returned_titles_are_distinct(self):
        service = make_service(two_providers())
        response = await service.search({"query": QUERY, "target_size": 50})
        papers = response.papers
        for i, a in enumerate(papers):
            for b in papers[i + 1 :]:
                assert title_similarity(a, b) <= 0.8


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_failed_provider_reported(self):
        broken = StaticAdapter("broken_src", [], error=ProviderHttpError("broken_src", 404))
        adapters = two_providers() + [(broken, ProviderTier.AGGREGATOR)]
        service = make_service(adapters)

        response = await service.search({"query": QUERY, "target_size": 50})
        report = response.metadata

        assert response.total == 4
        assert report.failed_providers == ["broken_src"]
        assert not report.all_providers_failed
        outcomes = {c.provider: c.outcome for c in report.providers}
        assert outcomes["broken_src"] == OutcomeKind.HTTP_ERROR
        assert any(w.startswith("broken_src: http_error") for w in report.warnings)

    @pytest.mark.asyncio
    async def test_all_providers_failed(self):
        broken = StaticAdapter("broken_src", [], error=ProviderHttpError("broken_src", 404))
        service = make_service([(broken, ProviderTier.PREMIUM)])

        response = await service.search({"query": QUERY})

        assert response.total == 0
        assert response.metadata.all_providers_failed


class TestRequestValidation:
    @pytest.mark.asyncio
    async def test_empty_query_rejected_before_any_call(self):
        adapters = two_providers()
        service = make_service(adapters)
        with pytest.raises(ValidationError):
            await service.search({"query": ""})
        assert all(adapter.calls == 0 for adapter, _ in adapters)

    @pytest.mark.asyncio
    async def test_unknown_source_rejected(self):
        service = make_service(two_providers())
        with pytest.raises(ValidationError) as exc_info:
            await service.search({"query": QUERY, "sources": ["nowhere"]})
        assert exc_info.value.errors[0]["field"] == "sources"

    @pytest.mark.asyncio
    async def test_non_object_rejected(self):
        service = make_service(two_providers())
        with pytest.raises(ValidationError):
            await service.search(["not", "a", "dict"])


class TestCachingAndCancellation:
    @pytest.mark.asyncio
    async def test_second_identical_search_served_from_cache(self, tmp_path):
        adapters = two_providers()
        service = make_service(adapters, cache_dir=tmp_path / "cache")
        try:
            first = await service.search({"query": QUERY, "target_size": 50})
            second = await service.search({"query": QUERY, "target_size": 50, "limit": 2})
        finally:
            service.close()

        assert not first.metadata.cache_hit
        assert second.metadata.cache_hit
        assert second.total == first.total
        assert len(second.papers) == 2
        assert all(adapter.calls == 1 for adapter, _ in adapters)

    @pytest.mark.asyncio
    async def test_cancelled_search_raises(self):
        token = CancellationToken()
        token.cancel("client disconnected")
        service = make_service(two_providers())
        with pytest.raises(SearchCancelled):
            await service.search({"query": QUERY}, token)
