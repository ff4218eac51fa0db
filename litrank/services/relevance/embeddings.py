"""Embedding providers for the neural relevance stage.

Any OpenAI-compatible `/embeddings` endpoint works with
HttpEmbeddingProvider (OpenAI, Azure OpenAI, vLLM, Ollama, TEI).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from litrank.models.config import EmbeddingConfig
from litrank.utils.exceptions import EmbeddingError

logger = structlog.get_logger()


class TransientEmbeddingError(EmbeddingError):
    """Timeout, 429 or 5xx from the embeddings endpoint; worth retrying."""

    pass


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        pass

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts; output order matches input order."""
        return list(await asyncio.gather(*(self.embed(t) for t in texts)))


class HttpEmbeddingProvider(EmbeddingProvider):
    """Client for an OpenAI-compatible embeddings API."""

    def __init__(
        self,
        config: EmbeddingConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config
        self._session = session
        self.url = config.base_url.rstrip("/") + "/embeddings"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors: List[List[float]] = []
        size = self.config.batch_size
        for start in range(0, len(texts), size):
            batch = [t.strip() or " " for t in texts[start : start + size]]
            vectors.extend(await self._post(batch))
        logger.debug("embeddings_created", count=len(vectors), model=self.config.model)
        return vectors

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TransientEmbeddingError),
        reraise=True,
    )
    async def _post(self, batch: List[str]) -> List[List[float]]:
        payload = {"model": self.config.model, "input": batch}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            if self._session is not None:
                data = await self._request(self._session, payload, timeout)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._request(session, payload, timeout)
        except asyncio.TimeoutError:
            raise TransientEmbeddingError("embedding request timed out")
        except aiohttp.ClientError as e:
            raise TransientEmbeddingError(f"embedding request failed: {e}") from e

        return self._parse(data, expected=len(batch))

    async def _request(
        self,
        session: aiohttp.ClientSession,
        payload: Dict[str, Any],
        timeout: aiohttp.ClientTimeout,
    ) -> Any:
        async with session.post(
            self.url, json=payload, headers=self._headers(), timeout=timeout
        ) as response:
            if response.status == 429 or response.status >= 500:
                raise TransientEmbeddingError(f"embeddings endpoint returned {response.status}")
            if response.status != 200:
                body = await response.text()
                logger.error(
                    "embedding_http_error", status=response.status, body=body[:200]
                )
                raise EmbeddingError(f"embeddings endpoint returned {response.status}")
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise EmbeddingError("embeddings endpoint returned invalid JSON") from e

    @staticmethod
    def _parse(data: Any, expected: int) -> List[List[float]]:
        try:
            items = sorted(data["data"], key=lambda d: d.get("index", 0))
            vectors = [list(map(float, item["embedding"])) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(f"malformed embeddings response: {e}") from e
        if len(vectors) != expected:
            raise EmbeddingError(
                f"embeddings response has {len(vectors)} vectors, expected {expected}"
            )
        return vectors


def build_embedding_provider(config: EmbeddingConfig) -> Optional[EmbeddingProvider]:
    """HTTP provider when enabled in config, else None (lexical ranking only)."""
    if not config.enabled:
        return None
    return HttpEmbeddingProvider(config)
