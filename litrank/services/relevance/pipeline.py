"""
Relevance cascade as an explicit state machine.

    LEXICAL_SCORED -> LEXICALLY_FILTERED -> NEURAL_TIER0
                                          | NEURAL_TIER1
                                          | LEXICAL_FALLBACK
                   -> DOMAIN_FILTERED -> ASPECT_FILTERED

Each transition is its own method on RelevancePipeline and can be
driven step by step. The neural step never produces an empty set from
a non-empty one: when no candidate clears the relaxed threshold, or the
embedding provider fails, the top lexical candidates are used instead
and the degradation is recorded.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

import structlog

from litrank.models.audit import NeuralTier
from litrank.models.config import RelevanceConfig
from litrank.models.paper import Paper
from litrank.observability.metrics import PIPELINE_DEGRADATIONS
from litrank.observability.stages import StageRecorder
from litrank.services.relevance.aspects import aspect_filter
from litrank.services.relevance.bm25 import BM25Scorer, lexical_filter
from litrank.services.relevance.domain import domain_filter
from litrank.services.relevance.embeddings import EmbeddingProvider
from litrank.services.relevance.neural import NeuralRanker
from litrank.services.relevance.thresholds import PurposeProfile
from litrank.utils.exceptions import EmbeddingError, PipelineDegraded

logger = structlog.get_logger()


class PipelineState(str, Enum):
    LEXICAL_SCORED = "lexical_scored"
    LEXICALLY_FILTERED = "lexically_filtered"
    NEURAL_TIER0 = "neural_tier0"
    NEURAL_TIER1 = "neural_tier1"
    LEXICAL_FALLBACK = "lexical_fallback"
    DOMAIN_FILTERED = "domain_filtered"
    ASPECT_FILTERED = "aspect_filtered"


_NEURAL_STATES = frozenset(
    {PipelineState.NEURAL_TIER0, PipelineState.NEURAL_TIER1, PipelineState.LEXICAL_FALLBACK}
)

TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.LEXICAL_SCORED: frozenset({PipelineState.LEXICALLY_FILTERED}),
    PipelineState.LEXICALLY_FILTERED: _NEURAL_STATES,
    PipelineState.NEURAL_TIER0: frozenset({PipelineState.DOMAIN_FILTERED}),
    PipelineState.NEURAL_TIER1: frozenset({PipelineState.DOMAIN_FILTERED}),
    PipelineState.LEXICAL_FALLBACK: frozenset({PipelineState.DOMAIN_FILTERED}),
    PipelineState.DOMAIN_FILTERED: frozenset({PipelineState.ASPECT_FILTERED}),
    PipelineState.ASPECT_FILTERED: frozenset(),
}

_TIER_FOR_STATE = {
    PipelineState.NEURAL_TIER0: NeuralTier.TIER0,
    PipelineState.NEURAL_TIER1: NeuralTier.TIER1,
    PipelineState.LEXICAL_FALLBACK: NeuralTier.LEXICAL_FALLBACK,
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class RelevanceRun:
    """Working state of one pass through the cascade.

    Confined to the pipeline; callers read `result()`.
    """

    query: str
    profile: PurposeProfile
    papers: List[Paper]
    state: PipelineState = PipelineState.LEXICAL_SCORED
    visited: List[PipelineState] = field(default_factory=lambda: [PipelineState.LEXICAL_SCORED])
    warnings: List[str] = field(default_factory=list)
    degraded: bool = False
    lexical_candidates: int = 0

    def advance(self, target: PipelineState, papers: List[Paper]) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.state = target
        self.visited.append(target)
        self.papers = papers

    @property
    def tier(self) -> Optional[NeuralTier]:
        for state in reversed(self.visited):
            if state in _TIER_FOR_STATE:
                return _TIER_FOR_STATE[state]
        return None

    def result(self) -> "RelevanceResult":
        return RelevanceResult(
            papers=list(self.papers),
            tier=self.tier,
            states=tuple(s.value for s in self.visited),
            warnings=tuple(self.warnings),
            degraded=self.degraded,
        )


@dataclass(frozen=True)
class RelevanceResult:
    papers: List[Paper]
    tier: Optional[NeuralTier]
    states: Tuple[str, ...]
    warnings: Tuple[str, ...]
    degraded: bool


class RelevancePipeline:
    """BM25 -> neural (tiered, with lexical fallback) -> domain -> aspects."""

    def __init__(
        self,
        config: Optional[RelevanceConfig] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        self.config = config or RelevanceConfig()
        self.scorer = BM25Scorer(k1=self.config.bm25_k1, b=self.config.bm25_b)
        self.ranker: Optional[NeuralRanker] = None
        if embedding_provider is not None and self.config.neural_enabled:
            self.ranker = NeuralRanker(
                embedding_provider,
                max_papers=self.config.max_neural_papers,
                timeout_seconds=self.config.neural_timeout_seconds,
            )

    async def run(
        self,
        query: str,
        papers: List[Paper],
        profile: PurposeProfile,
        recorder: Optional[StageRecorder] = None,
    ) -> RelevanceResult:
        recorder = recorder or StageRecorder()

        with recorder.stage("lexical_scoring", len(papers)) as out:
            run = self.score_lexical(query, papers, profile)
            out.count = len(run.papers)
        with recorder.stage("lexical_filter", len(run.papers)) as out:
            self.filter_lexical(run)
            out.count = len(run.papers)
        with recorder.stage("neural_ranking", len(run.papers)) as out:
            await self.rank_neural(run)
            out.count = len(run.papers)
        with recorder.stage("domain_filter", len(run.papers)) as out:
            self.filter_domain(run)
            out.count = len(run.papers)
        with recorder.stage("aspect_filter", len(run.papers)) as out:
            self.filter_aspects(run)
            out.count = len(run.papers)

        result = run.result()
        logger.info(
            "relevance_pipeline_complete",
            tier=result.tier.value if result.tier else None,
            states=list(result.states),
            output=len(result.papers),
            degraded=result.degraded,
        )
        return result

    def score_lexical(self, query: str, papers: List[Paper], profile: PurposeProfile) -> RelevanceRun:
        """Initial state: every paper carries a BM25 relevance score."""
        return RelevanceRun(query=query, profile=profile, papers=self.scorer.score_all(query, papers))

    def filter_lexical(self, run: RelevanceRun) -> None:
        outcome = lexical_filter(
            run.papers,
            run.query,
            threshold_multiplier=self.config.lexical_threshold_multiplier,
            zero_score_bypass_ratio=self.config.zero_score_bypass_ratio,
        )
        if outcome.warning:
            run.warnings.append(outcome.warning)
        run.lexical_candidates = len(outcome.papers)
        run.advance(PipelineState.LEXICALLY_FILTERED, outcome.papers)

    async def rank_neural(self, run: RelevanceRun) -> None:
        """Tier0, else Tier1, else the top lexical candidates."""
        candidates = run.papers
        if not candidates:
            run.advance(PipelineState.LEXICAL_FALLBACK, [])
            return

        if self.ranker is None:
            self._fall_back(run, "neural ranking unavailable")
            return

        try:
            scored = await self.ranker.score(run.query, candidates)
        except EmbeddingError as e:
            logger.warning("neural_ranking_failed", error=str(e))
            self._fall_back(run, f"embedding failed: {e}")
            return

        needed = min(self.config.min_neural_survivors, len(scored))
        tier0 = [p for p in scored if self._passes(run.profile, 0, p)]
        if tier0 and len(tier0) >= needed:
            run.advance(PipelineState.NEURAL_TIER0, tier0)
            return

        tier1 = [p for p in scored if self._passes(run.profile, 1, p)]
        if tier1:
            run.warnings.append(
                f"neural threshold relaxed to tier 1: {len(tier0)} papers passed tier 0"
            )
            PIPELINE_DEGRADATIONS.labels(tier=NeuralTier.TIER1.value).inc()
            logger.info("neural_tier_relaxed", tier0=len(tier0), tier1=len(tier1))
            run.advance(PipelineState.NEURAL_TIER1, tier1)
            return

        self._fall_back(run, "no candidates passed the neural thresholds")

    @staticmethod
    def _passes(profile: PurposeProfile, tier: int, paper: Paper) -> bool:
        score = paper.neural_relevance_score
        return score is not None and score >= profile.neural_threshold(tier, paper)

    def _fall_back(self, run: RelevanceRun, reason: str) -> None:
        """Top-N lexical candidates, unfiltered by the neural model."""
        top = sorted(run.papers, key=lambda p: p.relevance_score or 0.0, reverse=True)
        top = top[: self.config.lexical_fallback_size]
        degradation = PipelineDegraded(reason, tier=NeuralTier.LEXICAL_FALLBACK.value)
        run.warnings.append(str(degradation))
        run.degraded = True
        PIPELINE_DEGRADATIONS.labels(tier=NeuralTier.LEXICAL_FALLBACK.value).inc()
        logger.warning("pipeline_degraded", reason=reason, fallback_size=len(top))
        run.advance(PipelineState.LEXICAL_FALLBACK, top)

    def filter_domain(self, run: RelevanceRun) -> None:
        outcome = domain_filter(
            run.papers, run.query, self.config.domain_confidence_threshold
        )
        run.advance(PipelineState.DOMAIN_FILTERED, outcome.papers)

    def filter_aspects(self, run: RelevanceRun) -> None:
        run.advance(PipelineState.ASPECT_FILTERED, aspect_filter(run.papers, run.query))
