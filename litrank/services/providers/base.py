import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import aiohttp
import structlog
from pydantic import BaseModel, ConfigDict, Field

from litrank.models.paper import Paper
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import (
    ProviderHttpError,
    ProviderParseError,
    ProviderRateLimited,
    ProviderTimeout,
)

logger = structlog.get_logger()


class SearchConstraints(BaseModel):
    """Provider-independent search constraints"""

    model_config = ConfigDict(frozen=True)

    year_from: Optional[int] = None
    year_to: Optional[int] = None
    limit: int = Field(default=20, ge=1, le=500)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After header as seconds (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class SourceAdapter(ABC):
    """Capability interface implemented once per academic provider

    Adapters translate a provider's proprietary format into Paper records.
    They make a single attempt and raise classified ProviderError
    subclasses; retries, rate limiting and circuit breaking belong to the
    ResilienceGovernor.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider id, matching the registry"""
        pass

    @property
    def requires_api_key(self) -> bool:
        return False

    @abstractmethod
    async def search(
        self,
        query: str,
        constraints: SearchConstraints,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[Paper]:
        """Search the provider once.

        Raises:
            ProviderTimeout, ProviderRateLimited, ProviderHttpError,
            ProviderParseError
        """
        pass


class HttpSourceAdapter(SourceAdapter):
    """Shared aiohttp plumbing for HTTP providers."""

    BASE_URL = ""
    RATE_LIMIT_STATUSES = frozenset({429})

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 30.0,
        api_key: Optional[str] = None,
    ):
        self._session = session
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": "litrank/0.1 (literature search)"}

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """GET `url` and decode JSON, mapping failures to ProviderErrors."""
        return await self._fetch(url, params, as_text=False)

    async def _get_text(self, url: str, params: Dict[str, Any]) -> str:
        return await self._fetch(url, params, as_text=True)

    async def _fetch(self, url: str, params: Dict[str, Any], as_text: bool) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            if self._session is not None:
                return await self._request(self._session, url, params, timeout, as_text)
            async with aiohttp.ClientSession() as session:
                return await self._request(session, url, params, timeout, as_text)
        except asyncio.TimeoutError:
            raise ProviderTimeout(self.name, f"{self.name}: request timed out")
        except aiohttp.ClientError as e:
            raise ProviderHttpError(self.name, 0, f"{self.name}: {e}") from e

    async def _request(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: Dict[str, Any],
        timeout: aiohttp.ClientTimeout,
        as_text: bool = False,
    ) -> Any:
        async with session.get(
            url, params=params, headers=self._headers(), timeout=timeout
        ) as response:
            if response.status in self.RATE_LIMIT_STATUSES:
                raise ProviderRateLimited(
                    self.name,
                    f"{self.name} rate limit exceeded",
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                )

            if response.status != 200:
                text = await response.text()
                logger.error(
                    "provider_http_error",
                    provider=self.name,
                    status=response.status,
                    body=text[:200],
                )
                raise ProviderHttpError(self.name, response.status)

            if as_text:
                return await response.text()
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ProviderParseError(self.name, f"{self.name}: invalid JSON") from e

    def _parse_items(self, items: List[Dict[str, Any]]) -> List[Paper]:
        """Parse each item, skipping (and logging) malformed records."""
        papers = []
        for item in items:
            try:
                paper = self._parse_item(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "paper_parsing_failed",
                    provider=self.name,
                    item_id=str(item.get("id", "unknown")) if isinstance(item, dict) else "unknown",
                    error=str(e),
                )
                continue
            if paper is not None:
                papers.append(paper)
        return papers

    def _parse_item(self, item: Dict[str, Any]) -> Optional[Paper]:
        raise NotImplementedError
