from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from litrank.models.paper import Author, ContentAvailability, Paper
from litrank.services.providers.base import HttpSourceAdapter, SearchConstraints
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderParseError

logger = structlog.get_logger()


class SemanticScholarAdapter(HttpSourceAdapter):
    """Search for papers using the Semantic Scholar Graph API"""

    BASE_URL = "https://api.semanticscholar.org/graph/v1/paper/search"
    FIELDS = "paperId,externalIds,title,abstract,url,authors,year,venue,citationCount,openAccessPdf"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(session=session, timeout_seconds=timeout_seconds, api_key=api_key)

    @property
    def name(self) -> str:
        return "semantic_scholar"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        # Works without a key at a lower shared rate limit
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def search(
        self,
        query: str,
        constraints: SearchConstraints,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        data = await self._get_json(self.BASE_URL, self._build_query_params(query, constraints))
        if not isinstance(data, dict):
            raise ProviderParseError(self.name, "semantic_scholar: unexpected payload")

        papers = self._parse_items(data.get("data") or [])
        logger.info("papers_discovered", provider=self.name, query=query, count=len(papers))
        return papers

    def _build_query_params(self, query: str, constraints: SearchConstraints) -> dict:
        params: Dict[str, Any] = {
            "query": query,
            "limit": min(constraints.limit, 100),
            "fields": self.FIELDS,
        }
        if constraints.year_from or constraints.year_to:
            start = constraints.year_from or ""
            end = constraints.year_to or ""
            params["year"] = f"{start}-{end}"
        return params

    def _parse_item(self, item: Dict[str, Any]) -> Optional[Paper]:
        if not item.get("title"):
            return None

        authors = [
            Author(name=a["name"]) for a in item.get("authors") or [] if a.get("name")
        ]
        external_ids = item.get("externalIds") or {}
        has_pdf = bool((item.get("openAccessPdf") or {}).get("url"))
        abstract = item.get("abstract")

        if has_pdf:
            availability = ContentAvailability.FULL_TEXT
        elif abstract:
            availability = ContentAvailability.ABSTRACT
        else:
            availability = ContentAvailability.NONE

        return Paper(
            paper_id=item["paperId"],
            doi=external_ids.get("DOI"),
            title=item["title"],
            abstract=abstract,
            authors=authors,
            year=item.get("year"),
            venue=item.get("venue") or None,
            citation_count=item.get("citationCount"),
            url=item.get("url") or f"https://www.semanticscholar.org/paper/{item['paperId']}",
            source_provider=self.name,
            content_availability=availability,
        )
