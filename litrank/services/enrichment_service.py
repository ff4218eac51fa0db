"""
Metadata enrichment ahead of quality scoring.

Derives the fields the quality scorer reads:
- citations per year (citation count over paper age)
- abstract word count
- content availability (upgraded when an abstract is present)
- metadata completeness (share of weighted fields present)
- research field, so citation impact is scored against the field baseline

An optional MetadataLookup fills missing citation counts and venues
from a second provider. Lookups run through the ResilienceGovernor, so
they share the provider's rate limit, bulkhead and circuit breaker.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

from litrank.models.paper import ContentAvailability, Paper
from litrank.services.governor import ResilienceGovernor
from litrank.services.providers.openalex import OpenAlexAdapter
from litrank.services.quality_scorer import UNKNOWN_YEAR_AGE, current_year
from litrank.services.relevance.domain import classify_domain
from litrank.utils.cancellation import CancellationToken
from litrank.utils.text import word_count

logger = structlog.get_logger()

# Weight of each field in metadata_completeness; sums to 1.0
COMPLETENESS_WEIGHTS: Dict[str, float] = {
    "abstract": 0.35,
    "authors": 0.20,
    "doi": 0.15,
    "year": 0.10,
    "venue": 0.10,
    "citation_count": 0.10,
}

# Upper bound on lookups per request
DEFAULT_MAX_LOOKUPS = 50


class MetadataLookup(ABC):
    """Source of citation counts and venues for a known DOI."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider id used for governor accounting"""
        pass

    @abstractmethod
    async def lookup(self, doi: str) -> Optional[Paper]:
        """Return the provider's record for `doi`, or None if unknown."""
        pass


class OpenAlexLookup(MetadataLookup):
    """DOI lookups against OpenAlex's works endpoint."""

    def __init__(self, adapter: Optional[OpenAlexAdapter] = None):
        self.adapter = adapter or OpenAlexAdapter()

    @property
    def name(self) -> str:
        return self.adapter.name

    async def lookup(self, doi: str) -> Optional[Paper]:
        return await self.adapter.fetch_by_doi(doi)


class Enricher:
    """Add derived metadata to papers before scoring."""

    def __init__(
        self,
        year: Optional[int] = None,
        lookup: Optional[MetadataLookup] = None,
        governor: Optional[ResilienceGovernor] = None,
        max_lookups: int = DEFAULT_MAX_LOOKUPS,
    ):
        """Initialize enricher.

        Args:
            year: Year treated as "now"; defaults to the current UTC year.
            lookup: Optional second source for missing citations/venues.
            governor: Required when `lookup` is given.
            max_lookups: Cap on lookups issued per call to enrich_all.
        """
        if lookup is not None and governor is None:
            raise ValueError("A MetadataLookup must run through a ResilienceGovernor")
        self.year = year or current_year()
        self.lookup = lookup
        self.governor = governor
        self.max_lookups = max_lookups

    def enrich(self, paper: Paper) -> Paper:
        """Derive enrichment fields from the paper's own metadata."""
        words = word_count(paper.abstract)

        availability = paper.content_availability
        if availability == ContentAvailability.NONE and words > 0:
            availability = ContentAvailability.ABSTRACT

        domain, confidence = paper.domain, paper.domain_confidence
        if domain is None:
            domain, confidence = classify_domain(paper.text)

        return paper.with_scores(
            citations_per_year=self._citations_per_year(paper),
            abstract_word_count=words,
            content_availability=availability,
            metadata_completeness=self._completeness(paper),
            domain=domain,
            domain_confidence=confidence,
        )

    def _citations_per_year(self, paper: Paper) -> Optional[float]:
        if paper.citation_count is None:
            return None
        age = self.year - paper.year if paper.year is not None else UNKNOWN_YEAR_AGE
        return round(paper.citation_count / max(1, age), 3)

    @staticmethod
    def _completeness(paper: Paper) -> float:
        present = {
            "abstract": bool(paper.abstract),
            "authors": bool(paper.authors),
            "doi": bool(paper.doi),
            "year": paper.year is not None,
            "venue": bool(paper.venue),
            "citation_count": paper.citation_count is not None,
        }
        score = sum(COMPLETENESS_WEIGHTS[field] for field, ok in present.items() if ok)
        return round(min(1.0, score), 3)

    async def enrich_all(
        self,
        papers: List[Paper],
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        """Fill gaps through the lookup (if any), then enrich every paper.

        Order is preserved. A failed lookup leaves the paper as it was.
        """
        if self.lookup is not None and papers:
            papers = await self._fill_missing(papers, cancellation)

        enriched = [self.enrich(p) for p in papers]
        logger.info(
            "papers_enriched",
            total=len(enriched),
            with_citations=sum(1 for p in enriched if p.citation_count is not None),
            with_abstract=sum(1 for p in enriched if p.abstract_word_count),
        )
        return enriched

    async def _fill_missing(
        self,
        papers: List[Paper],
        cancellation: Optional[CancellationToken],
    ) -> List[Paper]:
        assert self.lookup is not None and self.governor is not None
        lookup = self.lookup
        governor = self.governor

        candidates = [
            i
            for i, p in enumerate(papers)
            if p.doi and (p.citation_count is None or not p.venue)
        ][: self.max_lookups]
        if not candidates:
            return papers

        async def fetch(index: int) -> Optional[Paper]:
            doi = papers[index].doi
            result = await governor.execute(
                lookup.name, lambda: lookup.lookup(doi), cancellation
            )
            return result.value if result.ok else None

        found = await asyncio.gather(*(fetch(i) for i in candidates))

        filled = list(papers)
        updated = 0
        for index, record in zip(candidates, found):
            if record is None:
                continue
            paper = filled[index]
            new_citations = record.citation_count if paper.citation_count is None else None
            new_venue = record.venue if not paper.venue else None
            merged = paper.with_scores(citation_count=new_citations, venue=new_venue)
            if merged is not paper:
                updated += 1
            filled[index] = merged

        logger.info(
            "metadata_lookup_complete",
            provider=lookup.name,
            requested=len(candidates),
            updated=updated,
        )
        return filled
