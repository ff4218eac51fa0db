from datetime import datetime
from typing import Any, List, Optional

import aiohttp
import feedparser
import structlog

from litrank.models.paper import Author, ContentAvailability, Paper
from litrank.services.providers.base import HttpSourceAdapter, SearchConstraints
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderParseError

logger = structlog.get_logger()


class ArxivAdapter(HttpSourceAdapter):
    """Search for preprints using the arXiv Atom API"""

    BASE_URL = "https://export.arxiv.org/api/query"
    # arXiv answers 403 when a client ignores its 3 second spacing
    RATE_LIMIT_STATUSES = frozenset({403, 429})

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(session=session, timeout_seconds=timeout_seconds)

    @property
    def name(self) -> str:
        return "arxiv"

    async def search(
        self,
        query: str,
        constraints: SearchConstraints,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        body = await self._get_text(self.BASE_URL, self._build_query_params(query, constraints))
        feed = feedparser.parse(body)

        if feed.bozo and not feed.entries:
            raise ProviderParseError(
                self.name, f"arxiv: unreadable feed ({feed.get('bozo_exception')})"
            )
        if feed.bozo:
            # Minor XML issues, entries are still usable
            logger.warning("arxiv_feed_parse_warning", error=str(feed.get("bozo_exception")))

        papers = self._parse_feed(feed)
        logger.info("papers_discovered", provider=self.name, query=query, count=len(papers))
        return papers

    def _build_query_params(self, query: str, constraints: SearchConstraints) -> dict:
        terms = " AND ".join(f"all:{word}" for word in query.split())
        search_query = f"({terms})" if terms else f"all:{query}"

        if constraints.year_from or constraints.year_to:
            start = f"{constraints.year_from or 1991}01010000"
            end = f"{constraints.year_to or 2999}12312359"
            search_query = f"{search_query} AND submittedDate:[{start} TO {end}]"

        return {
            "search_query": search_query,
            "start": 0,
            "max_results": constraints.limit,
            "sortBy": "relevance",
            "sortOrder": "descending",
        }

    def _parse_feed(self, feed: Any) -> List[Paper]:
        papers = []
        for entry in feed.entries:
            try:
                paper_id = entry.id.split("/abs/")[-1]
                year = None
                if entry.get("published_parsed"):
                    year = datetime(*entry.published_parsed[:6]).year

                papers.append(
                    Paper(
                        paper_id=paper_id,
                        doi=entry.get("arxiv_doi"),
                        title=" ".join(entry.title.split()),
                        abstract=" ".join(entry.get("summary", "").split()) or None,
                        authors=[Author(name=a.name) for a in entry.get("authors", []) if a.get("name")],
                        year=year,
                        venue=entry.get("arxiv_journal_ref") or "arXiv",
                        citation_count=None,  # arXiv does not report citations
                        url=entry.get("link"),
                        source_provider=self.name,
                        content_availability=ContentAvailability.FULL_TEXT,
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "arxiv_entry_parse_error",
                    error=str(e),
                    entry_id=getattr(entry, "id", "unknown"),
                )
                continue
        return papers
