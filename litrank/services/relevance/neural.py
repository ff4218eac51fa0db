"""Neural semantic reranking by embedding cosine similarity."""

import asyncio
from typing import List, Sequence

import numpy as np
import structlog

from litrank.models.paper import Paper
from litrank.services.relevance.embeddings import EmbeddingProvider
from litrank.utils.exceptions import EmbeddingError

logger = structlog.get_logger()


def cosine_similarities(query_vector: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine similarity of each row in `vectors` to `query_vector`.

    Zero vectors get similarity 0 rather than NaN.
    """
    q = np.asarray(query_vector, dtype=float)
    m = np.asarray(vectors, dtype=float)
    if m.ndim != 2 or q.ndim != 1 or m.shape[1] != q.shape[0]:
        raise EmbeddingError(
            f"embedding shape mismatch: query {q.shape}, candidates {m.shape}"
        )
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims


class NeuralRanker:
    """Attach `neural_relevance_score` (0-1) to lexical candidates."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_papers: int = 1500,
        timeout_seconds: float = 30.0,
    ):
        self.provider = provider
        self.max_papers = max_papers
        self.timeout_seconds = timeout_seconds

    async def score(self, query: str, papers: List[Paper]) -> List[Paper]:
        """Score the best `max_papers` candidates by lexical relevance.

        Candidates beyond the budget are not scored and not returned.

        Raises:
            EmbeddingError: Provider failure, timeout or malformed vectors.
        """
        if not papers:
            return []

        candidates = papers
        if len(papers) > self.max_papers:
            candidates = sorted(papers, key=lambda p: p.relevance_score or 0.0, reverse=True)[
                : self.max_papers
            ]
            logger.info(
                "neural_budget_applied",
                candidates=len(papers),
                scored=self.max_papers,
            )

        try:
            vectors = await asyncio.wait_for(
                self.provider.embed_batch([query] + [p.text for p in candidates]),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"embedding timed out after {self.timeout_seconds}s") from e

        if len(vectors) != len(candidates) + 1:
            raise EmbeddingError(
                f"expected {len(candidates) + 1} vectors, got {len(vectors)}"
            )

        sims = np.clip(cosine_similarities(vectors[0], vectors[1:]), 0.0, 1.0)
        scored = [
            p.with_scores(neural_relevance_score=round(float(s), 4))
            for p, s in zip(candidates, sims)
        ]
        logger.info(
            "neural_scoring_complete",
            scored=len(scored),
            mean=round(float(sims.mean()), 4),
            top=round(float(sims.max()), 4),
        )
        return scored
