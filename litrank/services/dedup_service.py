"""
Paper deduplication.

Single pass keyed on Paper.identity_key:
1. Normalized DOI when present
2. Normalized lowercase title otherwise

First occurrence wins, so the result is deterministic for a stable
input order, and running it on its own output changes nothing.
"""

from typing import List, Set

import structlog

from litrank.models.dedup import DedupStats
from litrank.models.paper import Paper

logger = structlog.get_logger()


class DeduplicationService:
    """Collapse records that refer to the same work."""

    def __init__(self) -> None:
        self.last_stats = DedupStats()

    def dedupe(self, papers: List[Paper]) -> List[Paper]:
        """
        Drop later records whose identity key was already seen.

        Args:
            papers: Papers in provider order

        Returns:
            Unique papers in first-seen order
        """
        seen: Set[str] = set()
        unique: List[Paper] = []
        stats = DedupStats()

        for paper in papers:
            stats.total_papers_checked += 1
            key = paper.identity_key

            if key in seen:
                stats.duplicates_found += 1
                if key.startswith("doi:"):
                    stats.duplicates_by_doi += 1
                else:
                    stats.duplicates_by_title += 1
                logger.debug(
                    "duplicate_detected",
                    paper_id=paper.paper_id,
                    provider=paper.source_provider,
                    key=key[:80],
                )
                continue

            seen.add(key)
            unique.append(paper)

        self.last_stats = stats
        logger.info(
            "deduplication_complete",
            total=stats.total_papers_checked,
            unique=len(unique),
            duplicates=stats.duplicates_found,
            by_doi=stats.duplicates_by_doi,
            by_title=stats.duplicates_by_title,
            dedup_rate=f"{stats.dedup_rate:.1%}",
        )
        return unique
