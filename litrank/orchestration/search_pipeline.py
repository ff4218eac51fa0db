"""End-to-end literature search.

Stages, each timed into the audit report:
1. collection       - concurrent provider fan-out (SourceRouter)
2. deduplication    - DOI / title identity (DeduplicationService)
3. enrichment       - derived metadata and optional DOI lookups (Enricher)
4. quality_scoring  - purpose-weighted quality (QualityScorer)
5. relevance stages - BM25, neural tiers, domain and aspect filters
6. quality_gate     - purpose threshold, relaxed in steps of 5
7. distinctiveness  - drop near-identical titles
8. diversity_sampling
Then ranking, pagination and report assembly.

Usage:
    service = LiteratureSearchService.from_config(config)
    response = await service.search({"query": "primate social cognition"})
"""

import math
import time
import tracemalloc
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from litrank.models.audit import SearchAuditReport
from litrank.models.cache import CachedResult
from litrank.models.config import AppConfig
from litrank.models.paper import Paper
from litrank.models.provider import OutcomeKind, PartialFailureReport
from litrank.models.search import SearchRequest, SearchResponse, parse_search_request
from litrank.observability.context import correlation_id_context
from litrank.observability.metrics import SEARCHES_TOTAL
from litrank.observability.stages import StageRecorder
from litrank.services.cache_service import QueryCache
from litrank.services.dedup_service import DeduplicationService
from litrank.services.diversity_sampler import DiversitySampler
from litrank.services.enrichment_service import Enricher, OpenAlexLookup
from litrank.services.governor import ResilienceGovernor
from litrank.services.providers.openalex import OpenAlexAdapter
from litrank.services.providers.registry import ProviderRegistry, build_default_registry
from litrank.services.quality_scorer import QualityScorer
from litrank.services.relevance.embeddings import EmbeddingProvider, build_embedding_provider
from litrank.services.relevance.pipeline import RelevancePipeline
from litrank.services.relevance.thresholds import PurposeProfile, resolve_purpose_profile
from litrank.services.result_assembler import ResultAssembler
from litrank.services.source_router import SourceRouter
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import SearchCancelled, ValidationError
from litrank.utils.text import tokenize

logger = structlog.get_logger()

# The quality gate relaxes until at least this share of the target survives
QUALITY_GATE_MIN_SHARE = 0.25


def title_similarity(a: Paper, b: Paper) -> float:
    """Jaccard similarity of title tokens."""
    ta, tb = set(tokenize(a.title)), set(tokenize(b.title))
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


class LiteratureSearchService:
    """Single entry point shared by the HTTP server and the CLI."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        registry: Optional[ProviderRegistry] = None,
        governor: Optional[ResilienceGovernor] = None,
        cache: Optional[QueryCache] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        enricher: Optional[Enricher] = None,
        scorer: Optional[QualityScorer] = None,
    ):
        self.config = config or AppConfig()
        self.registry = registry or build_default_registry(self.config)
        self.governor = governor or ResilienceGovernor(self.config.governor)
        self.router = SourceRouter(self.registry, self.governor, self.config.router)
        self.cache = cache or QueryCache(self.config.cache)
        self.deduplicator = DeduplicationService()
        self.enricher = enricher or Enricher()
        self.scorer = scorer or QualityScorer()
        self.relevance = RelevancePipeline(self.config.relevance, embedding_provider)
        self.sampler = DiversitySampler(self.config.sampling)
        self.assembler = ResultAssembler()

    @classmethod
    def from_config(cls, config: AppConfig) -> "LiteratureSearchService":
        """Wire the bundled providers, embeddings and DOI lookups."""
        registry = build_default_registry(config)
        governor = ResilienceGovernor(config.governor)
        enricher = Enricher()
        if "openalex" in registry.provider_ids:
            adapter = registry.adapter("openalex")
            if isinstance(adapter, OpenAlexAdapter):
                enricher = Enricher(lookup=OpenAlexLookup(adapter), governor=governor)
        return cls(
            config=config,
            registry=registry,
            governor=governor,
            embedding_provider=build_embedding_provider(config.embedding),
            enricher=enricher,
        )

    def close(self) -> None:
        self.cache.close()

    def _parse(self, request: Union[SearchRequest, Dict[str, Any]]) -> SearchRequest:
        """Validate the request and its sources before any provider call."""
        if not isinstance(request, SearchRequest):
            if not isinstance(request, dict):
                raise ValidationError("Search request must be a JSON object")
            request = parse_search_request(request)
        try:
            self.registry.select(request.sources)
        except ValueError as e:
            raise ValidationError(str(e), errors=[{"field": "sources", "message": str(e)}])
        return request

    async def search(
        self,
        request: Union[SearchRequest, Dict[str, Any]],
        cancellation: Optional[CancellationToken] = None,
    ) -> SearchResponse:
        """Run one search and return the requested page.

        Raises:
            ValidationError: Invalid request; no provider was contacted.
            SearchCancelled: The token fired before the search finished.
        """
        with correlation_id_context():
            try:
                req = self._parse(request)
            except ValidationError as e:
                SEARCHES_TOTAL.labels(status="invalid").inc()
                logger.warning("search_rejected", error=str(e))
                raise

            logger.info(
                "search_started",
                query=req.query[:100],
                sources=req.sources,
                purpose=req.purpose,
            )

            key = self.cache.make_key(req)
            cached = self.cache.get(key) if self.cache.enabled else None
            if cached is not None:
                SEARCHES_TOTAL.labels(status=self._status(cached.metadata)).inc()
                metadata = cached.metadata.model_copy(update={"cache_hit": True})
                logger.info("search_served_from_cache", total=len(cached.papers))
                return self.assembler.respond(cached.papers, metadata, req.page, req.limit)

            cancellation = cancellation or CancellationToken()
            trace_memory = self.config.track_memory and not tracemalloc.is_tracing()
            if trace_memory:
                tracemalloc.start()
            try:
                ranked, report = await self._execute(req, cancellation)
            except SearchCancelled as e:
                SEARCHES_TOTAL.labels(status="cancelled").inc()
                logger.info("search_cancelled", reason=str(e))
                raise
            finally:
                if trace_memory:
                    tracemalloc.stop()

            status = self._status(report)
            SEARCHES_TOTAL.labels(status=status).inc()
            if status != "all_failed" and self.cache.enabled:
                self.cache.set(key, CachedResult(papers=ranked, metadata=report))

            logger.info(
                "search_completed",
                status=status,
                total=len(ranked),
                degraded=report.degraded,
                duration_ms=report.total_duration_ms,
            )
            return self.assembler.respond(ranked, report, req.page, req.limit)

    @staticmethod
    def _status(report: SearchAuditReport) -> str:
        if report.all_providers_failed:
            return "all_failed"
        if report.failed_providers:
            return "partial"
        return "success"

    async def _execute(
        self, req: SearchRequest, cancellation: CancellationToken
    ) -> Tuple[List[Paper], SearchAuditReport]:
        start = time.perf_counter()
        recorder = StageRecorder()
        profile = resolve_purpose_profile(req.purpose)
        target = req.target_size or profile.target_size
        warnings: List[str] = []
        if req.purpose is not None and req.purpose != profile.purpose.value:
            warnings.append(
                f"unknown research purpose '{req.purpose}', using {profile.purpose.value}"
            )

        with recorder.stage("collection", len(self.registry.select(req.sources))) as out:
            collected, failures = await self.router.search(req, cancellation)
            out.count = len(collected)

        with recorder.stage("deduplication", len(collected)) as out:
            unique = self.deduplicator.dedupe(collected)
            out.count = len(unique)

        tier = None
        states: Tuple[str, ...] = ()
        degraded = False
        final: List[Paper] = []
        if unique:
            cancellation.raise_if_cancelled()
            with recorder.stage("enrichment", len(unique)) as out:
                papers = await self.enricher.enrich_all(unique, cancellation)
                out.count = len(papers)

            with recorder.stage("quality_scoring", len(papers)) as out:
                papers = self.scorer.with_weights(profile.quality_weights).score_all(papers)
                out.count = len(papers)

            cancellation.raise_if_cancelled()
            relevance = await self.relevance.run(req.query, papers, profile, recorder)
            warnings.extend(relevance.warnings)
            tier, states, degraded = relevance.tier, relevance.states, relevance.degraded
            papers = relevance.papers

            with recorder.stage("quality_gate", len(papers)) as out:
                papers = self._quality_gate(papers, profile, target, warnings)
                out.count = len(papers)

            with recorder.stage("distinctiveness", len(papers)) as out:
                papers = self._distinct(papers, profile)
                out.count = len(papers)

            with recorder.stage("diversity_sampling", len(papers)) as out:
                final = self.sampler.sample(papers, target) if papers else []
                out.count = len(final)

        ranked = self.assembler.rank(final)
        report = self.assembler.build_report(
            query=req.query,
            purpose=profile.purpose.value,
            stages=recorder.stages,
            failures=failures,
            deduplicated_count=len(unique),
            final_papers=ranked,
            neural_tier=tier,
            pipeline_states=states,
            degraded=degraded,
            warnings=self._failure_warnings(failures) + warnings,
            total_duration_ms=(time.perf_counter() - start) * 1000,
        )
        return ranked, report

    @staticmethod
    def _failure_warnings(failures: PartialFailureReport) -> List[str]:
        return [
            f"{c.provider}: {c.outcome.value}" + (f" ({c.error})" if c.error else "")
            for c in failures.contributions
            if c.outcome != OutcomeKind.OK
        ]

    @staticmethod
    def _quality_gate(
        papers: List[Paper], profile: PurposeProfile, target: int, warnings: List[str]
    ) -> List[Paper]:
        """Keep papers at the purpose's quality threshold.

        The threshold steps down toward the purpose's floor until a
        quarter of the target survives; below the floor the gate is
        skipped rather than emptying the result.
        """
        if not papers:
            return []
        needed = min(len(papers), max(1, math.ceil(target * QUALITY_GATE_MIN_SHARE)))
        for threshold in profile.quality_relaxation_steps:
            kept = [p for p in papers if (p.quality_score or 0.0) >= threshold]
            if len(kept) >= needed:
                if threshold < profile.quality_threshold:
                    warnings.append(
                        f"quality threshold relaxed from {profile.quality_threshold:g} to {threshold:g}"
                    )
                logger.info("quality_gate_applied", threshold=threshold, input=len(papers), kept=len(kept))
                return kept

        warnings.append(
            f"quality gate skipped: fewer than {needed} papers reached {profile.quality_threshold_min:g}"
        )
        logger.warning("quality_gate_skipped", needed=needed, input=len(papers))
        return papers

    @staticmethod
    def _distinct(papers: List[Paper], profile: PurposeProfile) -> List[Paper]:
        """Drop papers whose title nearly repeats a better-ranked one."""
        limit = 1.0 - profile.min_distinctiveness
        kept: List[Paper] = []
        for paper in ResultAssembler.rank(papers):
            if all(title_similarity(paper, other) <= limit for other in kept):
                kept.append(paper)
        dropped = len(papers) - len(kept)
        if dropped:
            logger.info("near_duplicates_dropped", dropped=dropped, limit=round(limit, 2))
        return kept
