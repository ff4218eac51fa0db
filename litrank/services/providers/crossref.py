import re
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from litrank.models.paper import Author, ContentAvailability, Paper
from litrank.services.providers.base import HttpSourceAdapter, SearchConstraints
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import ProviderParseError

logger = structlog.get_logger()

_JATS_TAG = re.compile(r"<[^>]+>")


class CrossrefAdapter(HttpSourceAdapter):
    """Search for works using the Crossref REST API"""

    BASE_URL = "https://api.crossref.org/works"

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
        return "crossref"

    async def search(
        self,
        query: str,
        constraints: SearchConstraints,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        data = await self._get_json(self.BASE_URL, self._build_query_params(query, constraints))
        if not isinstance(data, dict) or not isinstance(data.get("message"), dict):
            raise ProviderParseError(self.name, "crossref: response has no message")

        papers = self._parse_items(data["message"].get("items") or [])
        logger.info("papers_discovered", provider=self.name, query=query, count=len(papers))
        return papers

    def _build_query_params(self, query: str, constraints: SearchConstraints) -> dict:
        params: Dict[str, Any] = {"query": query, "rows": min(constraints.limit, 1000)}
        filters = []
        if constraints.year_from:
            filters.append(f"from-pub-date:{constraints.year_from}")
        if constraints.year_to:
            filters.append(f"until-pub-date:{constraints.year_to}")
        if filters:
            params["filter"] = ",".join(filters)
        if self.mailto:
            params["mailto"] = self.mailto
        return params

    def _parse_item(self, item: Dict[str, Any]) -> Optional[Paper]:
        titles = item.get("title") or []
        if not titles:
            return None

        authors = []
        for a in item.get("author") or []:
            name = " ".join(p for p in (a.get("given"), a.get("family")) if p)
            if name:
                authors.append(Author(name=name))

        abstract = item.get("abstract")
        if abstract:
            abstract = " ".join(_JATS_TAG.sub(" ", abstract).split()) or None

        year = None
        date_parts = (item.get("issued") or {}).get("date-parts") or []
        if date_parts and date_parts[0] and date_parts[0][0]:
            year = int(date_parts[0][0])

        venues = item.get("container-title") or []
        return Paper(
            paper_id=item["DOI"],
            doi=item["DOI"],
            title=titles[0],
            abstract=abstract,
            authors=authors,
            year=year,
            venue=venues[0] if venues else None,
            citation_count=item.get("is-referenced-by-count"),
            url=item.get("URL"),
            source_provider=self.name,
            content_availability=(
                ContentAvailability.ABSTRACT if abstract else ContentAvailability.NONE
            ),
        )
