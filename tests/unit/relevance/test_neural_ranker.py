"""Unit tests for cosine similarity and the neural ranker."""

import asyncio
import math
from typing import Dict, List

import numpy as np
import pytest

from litrank.models.paper import Paper
from litrank.services.relevance.embeddings import EmbeddingProvider
from litrank.services.relevance.neural import NeuralRanker, cosine_similarities
from litrank.utils.exceptions import EmbeddingError


class KeywordEmbeddings(EmbeddingProvider):
    """Query maps to [1, 0]; a text's similarity is set by its first keyword."""

    def __init__(self, query: str, similarity: Dict[str, float], delay: float = 0.0):
        self.query = query
        self.similarity = similarity
        self.delay = delay
        self.texts: List[str] = []

    async def embed(self, text: str) -> List[float]:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.texts.append(text)
        if text == self.query:
            return [1.0, 0.0]
        s = next((v for k, v in self.similarity.items() if k in text.lower()), 0.0)
        return [s, math.sqrt(1 - s * s)]


class ShortEmbeddings(EmbeddingProvider):
    async def embed(self, text: str) -> List[float]:
        return [1.0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [[1.0]]


def make_paper(pid: str, title: str, relevance: float = 1.0) -> Paper:
    return Paper(paper_id=pid, title=title, source_provider="arxiv", relevance_score=relevance)


class TestCosineSimilarities:
    def test_basic(self):
        sims = cosine_similarities([1.0, 0.0], [[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])
        assert np.allclose(sims, [1.0, 0.0, math.sqrt(0.5)])

    def test_zero_vector_is_zero(self):
        sims = cosine_similarities([1.0, 0.0], [[0.0, 0.0]])
        assert sims.tolist() == [0.0]

    def test_shape_mismatch(self):
        with pytest.raises(EmbeddingError, match="shape"):
            cosine_similarities([1.0, 0.0], [[1.0, 0.0, 0.0]])


class TestNeuralRanker:
    """Tests for NeuralRanker.score."""

    @pytest.mark.asyncio
    async def test_scores_attached(self):
        provider = KeywordEmbeddings("bat echolocation", {"calls": 0.9, "caves": 0.4})
        papers = [make_paper("1", "Bat calls"), make_paper("2", "Bat caves"), make_paper("3", "Coral")]

        scored = await NeuralRanker(provider).score("bat echolocation", papers)

        assert [p.neural_relevance_score for p in scored] == [0.9, 0.4, 0.0]
        assert provider.texts[0] == "bat echolocation"

    @pytest.mark.asyncio
    async def test_negative_similarity_clipped(self):
        class Opposite(EmbeddingProvider):
            async def embed(self, text):
                return [1.0, 0.0] if text == "q" else [-1.0, 0.0]

        scored = await NeuralRanker(Opposite()).score("q", [make_paper("1", "x")])
        assert scored[0].neural_relevance_score == 0.0

    @pytest.mark.asyncio
    async def test_budget_keeps_best_lexical_candidates(self):
        provider = KeywordEmbeddings("q", {})
        papers = [make_paper(str(i), f"Paper {i}", relevance=float(i)) for i in range(5)]

        scored = await NeuralRanker(provider, max_papers=2).score("q", papers)

        assert [p.paper_id for p in scored] == ["4", "3"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await NeuralRanker(KeywordEmbeddings("q", {})).score("q", []) == []

    @pytest.mark.asyncio
    async def test_timeout_raises_embedding_error(self):
        provider = KeywordEmbeddings("q", {}, delay=0.5)
        ranker = NeuralRanker(provider, timeout_seconds=0.01)
        with pytest.raises(EmbeddingError, match="timed out"):
            await ranker.score("q", [make_paper("1", "x")])

    @pytest.mark.asyncio
    async def test_wrong_vector_count(self):
        with pytest.raises(EmbeddingError, match="expected 3 vectors"):
            await NeuralRanker(ShortEmbeddings()).score("q", [make_paper("1", "x"), make_paper("2", "y")])
