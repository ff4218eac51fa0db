"""Final ordering, pagination and the audit report.

The only component that builds caller-facing SearchResponse objects.
"""

from collections import Counter
from typing import Iterable, List, Optional, Sequence

import structlog

from litrank.models.audit import NeuralTier, SearchAuditReport, StageMetrics
from litrank.models.paper import Paper
from litrank.models.provider import PartialFailureReport
from litrank.models.search import SearchResponse

logger = structlog.get_logger()


class ResultAssembler:
    """Sort, paginate and attach the audit report."""

    @staticmethod
    def rank(papers: Iterable[Paper]) -> List[Paper]:
        """Neural relevance if present, else lexical; quality breaks ties.

        The sort is stable, so fully tied papers keep their input order.
        """
        return sorted(
            papers,
            key=lambda p: (p.ranking_score, p.quality_score or 0.0),
            reverse=True,
        )

    def build_report(
        self,
        *,
        query: str,
        purpose: str,
        stages: Sequence[StageMetrics],
        failures: PartialFailureReport,
        deduplicated_count: int,
        final_papers: Sequence[Paper],
        neural_tier: Optional[NeuralTier] = None,
        pipeline_states: Sequence[str] = (),
        degraded: bool = False,
        warnings: Sequence[str] = (),
        total_duration_ms: float = 0.0,
    ) -> SearchAuditReport:
        final_breakdown = dict(Counter(p.source_provider for p in final_papers))
        contributions = tuple(
            c.model_copy(update={"final_count": final_breakdown.get(c.provider, 0)})
            for c in failures.contributions
        )
        source_breakdown = {c.provider: c.collected for c in contributions}

        report = SearchAuditReport(
            query=query,
            purpose=purpose,
            stages=tuple(stages),
            providers=contributions,
            source_breakdown=source_breakdown,
            final_breakdown=final_breakdown,
            total_collected=sum(source_breakdown.values()),
            deduplicated_count=deduplicated_count,
            final_count=len(final_papers),
            neural_tier=neural_tier,
            pipeline_states=tuple(pipeline_states),
            degraded=degraded,
            deadline_reached=failures.deadline_reached,
            warnings=tuple(warnings),
            total_duration_ms=round(total_duration_ms, 3),
        )
        logger.info(
            "audit_report_built",
            total_collected=report.total_collected,
            deduplicated=report.deduplicated_count,
            final=report.final_count,
            neural_tier=neural_tier.value if neural_tier else None,
            failed_providers=report.failed_providers,
        )
        return report

    @staticmethod
    def paginate(papers: Sequence[Paper], page: int, limit: int) -> List[Paper]:
        start = (page - 1) * limit
        return list(papers[start : start + limit])

    def respond(
        self,
        ranked: Sequence[Paper],
        report: SearchAuditReport,
        page: int,
        limit: int,
    ) -> SearchResponse:
        return SearchResponse(
            papers=self.paginate(ranked, page, limit),
            total=len(ranked),
            page=page,
            limit=limit,
            metadata=report,
        )
