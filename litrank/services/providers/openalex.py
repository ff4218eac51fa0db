from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from litrank.models.paper import Author, ContentAvailability, Paper
from litrank.services.providers.base import HttpSourceAdapter, SearchConstraints
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderHttpError, ProviderParseError

logger = structlog.get_logger()


def reconstruct_abstract(inverted_index: Optional[Dict[str, List[int]]]) -> Optional[str]:
    """Rebuild abstract text from OpenAlex's word -> positions index."""
    if not inverted_index:
        return None
    positions = []
    for word, offsets in inverted_index.items():
        for offset in offsets:
            positions.append((offset, word))
    positions.sort()
    return " ".join(word for _, word in positions) or None


class OpenAlexAdapter(HttpSourceAdapter):
    """Search for works using the OpenAlex API"""

    BASE_URL = "https://api.openalex.org/works"

    def __init__(
        self,
        mailto: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(session=session, timeout_seconds=timeout_seconds)
        self.mailto = mailto

    @property
    def name(self) -> str:
        return "openalex"

    async def search(
        self,
        query: str,
        constraints: SearchConstraints,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        data = await self._get_json(self.BASE_URL, self._build_query_params(query, constraints))
        if not isinstance(data, dict):
            raise ProviderParseError(self.name, "openalex: unexpected payload")

        papers = self._parse_items(data.get("results") or [])
        logger.info("papers_discovered", provider=self.name, query=query, count=len(papers))
        return papers

    def _build_query_params(self, query: str, constraints: SearchConstraints) -> dict:
        params: Dict[str, Any] = {"search": query, "per-page": min(constraints.limit, 200)}
        filters = []
        if constraints.year_from:
            filters.append(f"from_publication_date:{constraints.year_from}-01-01")
        if constraints.year_to:
            filters.append(f"to_publication_date:{constraints.year_to}-12-31")
        if filters:
            params["filter"] = ",".join(filters)
        if self.mailto:
            params["mailto"] = self.mailto
        return params

    def _parse_item(self, item: Dict[str, Any]) -> Optional[Paper]:
        title = item.get("title") or item.get("display_name")
        if not title:
            return None

        source = ((item.get("primary_location") or {}).get("source") or {})
        authors = [
            Author(name=a["author"]["display_name"])
            for a in item.get("authorships") or []
            if (a.get("author") or {}).get("display_name")
        ]
        abstract = reconstruct_abstract(item.get("abstract_inverted_index"))
        is_oa = bool((item.get("open_access") or {}).get("is_oa"))

        if is_oa:
            availability = ContentAvailability.FULL_TEXT
        elif abstract:
            availability = ContentAvailability.ABSTRACT
        else:
            availability = ContentAvailability.NONE

        return Paper(
            paper_id=item["id"].rsplit("/", 1)[-1],
            doi=item.get("doi"),
            title=title,
            abstract=abstract,
            authors=authors,
            year=item.get("publication_year"),
            venue=source.get("display_name"),
            citation_count=item.get("cited_by_count"),
            url=item.get("id"),
            source_provider=self.name,
            content_availability=availability,
        )

    async def fetch_by_doi(self, doi: str) -> Optional[Paper]:
        """Look up a single work by DOI; None when OpenAlex has no record."""
        params: Dict[str, Any] = {}
        if self.mailto:
            params["mailto"] = self.mailto
        try:
            item = await self._get_json(f"{self.BASE_URL}/doi:{doi}", params)
        except ProviderHttpError as e:
            if e.status == 404:
                return None
            raise
        if not isinstance(item, dict):
            raise ProviderParseError(self.name, "openalex: unexpected payload")
        return self._parse_item(item)
