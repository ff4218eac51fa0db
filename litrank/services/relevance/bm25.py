"""
BM25 lexical relevance (Robertson & Walker, 1994).

Scores title + abstract with the title counted twice, then adjusts:
- Phrase bonus for query terms appearing next to each other
- Coverage penalty when only part of the query matches

The lexical floor depends on query complexity, and is skipped entirely
when most papers score zero (their wording simply differs from the
query's; the neural stage judges those).
"""

import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog

from litrank.models.paper import Paper
from litrank.utils.text import tokenize

logger = structlog.get_logger()

TITLE_WEIGHT = 2
BIGRAM_BONUS = 1.0
FULL_PHRASE_BONUS = 2.0
# Score multiplier ranges from this floor (nothing matched) to 1.0 (all matched)
COVERAGE_FLOOR = 0.5


class QueryComplexity(str, Enum):
    BROAD = "broad"
    SPECIFIC = "specific"
    COMPREHENSIVE = "comprehensive"


# Terms a paper is expected to match, by complexity
MIN_TERMS = {
    QueryComplexity.BROAD: 1,
    QueryComplexity.SPECIFIC: 2,
    QueryComplexity.COMPREHENSIVE: 2,
}


def classify_query_complexity(query: str) -> QueryComplexity:
    """Broad: 1-2 terms. Specific: 3-5 terms. Comprehensive: 6 or more."""
    terms = list(dict.fromkeys(tokenize(query)))
    if len(terms) <= 2:
        return QueryComplexity.BROAD
    if len(terms) <= 5:
        return QueryComplexity.SPECIFIC
    return QueryComplexity.COMPREHENSIVE


@dataclass(frozen=True)
class LexicalFilterResult:
    papers: List[Paper]
    threshold: float
    complexity: QueryComplexity
    bypassed: bool
    zero_score_ratio: float
    warning: Optional[str] = None


class BM25Scorer:
    """BM25 over a candidate set; idf is computed from the candidates."""

    def __init__(self, k1: float = 1.2, b: float = 0.75):
        self.k1 = k1
        self.b = b

    @staticmethod
    def _document(paper: Paper) -> List[str]:
        title = tokenize(paper.title)
        abstract = tokenize(paper.abstract)
        return title * TITLE_WEIGHT + abstract

    def score_all(self, query: str, papers: List[Paper]) -> List[Paper]:
        """Attach `relevance_score` to every paper, keeping input order."""
        terms = list(dict.fromkeys(tokenize(query)))
        if not papers:
            return []
        if not terms:
            return [p.with_scores(relevance_score=0.0) for p in papers]

        docs = [self._document(p) for p in papers]
        counts = [Counter(doc) for doc in docs]
        avgdl = sum(len(doc) for doc in docs) / len(docs) or 1.0
        idf = self._idf(terms, counts)

        scored = []
        for paper, doc, tf in zip(papers, docs, counts):
            score = self._score(terms, paper, doc, tf, avgdl, idf)
            scored.append(paper.with_scores(relevance_score=round(score, 4)))
        return scored

    def _idf(self, terms: List[str], counts: List[Counter]) -> Dict[str, float]:
        n = len(counts)
        idf = {}
        for term in terms:
            df = sum(1 for tf in counts if term in tf)
            # Smoothed so that a term shared by every candidate still counts
            idf[term] = 1.0 + math.log(1 + (n - df + 0.5) / (df + 0.5))
        return idf

    def _score(
        self,
        terms: List[str],
        paper: Paper,
        doc: List[str],
        tf: Counter,
        avgdl: float,
        idf: Dict[str, float],
    ) -> float:
        norm = 1 - self.b + self.b * (len(doc) / avgdl)
        score = 0.0
        matched = 0
        for term in terms:
            freq = tf.get(term, 0)
            if not freq:
                continue
            matched += 1
            score += idf[term] * freq * (self.k1 + 1) / (freq + self.k1 * norm)

        if matched == 0:
            return 0.0

        score += self._phrase_bonus(terms, paper)
        coverage = matched / len(terms)
        return score * (COVERAGE_FLOOR + (1 - COVERAGE_FLOOR) * coverage)

    @staticmethod
    def _phrase_bonus(terms: List[str], paper: Paper) -> float:
        """Bonus per adjacent query-term pair found in order in the text."""
        if len(terms) < 2:
            return 0.0
        text = tokenize(paper.text)
        bigrams = set(zip(text, text[1:]))
        pairs: List[Tuple[str, str]] = list(zip(terms, terms[1:]))
        found = sum(1 for pair in pairs if pair in bigrams)
        bonus = found * BIGRAM_BONUS
        if found == len(pairs):
            joined = " " + " ".join(terms) + " "
            if joined in " " + " ".join(text) + " ":
                bonus += FULL_PHRASE_BONUS
        return bonus


def lexical_filter(
    papers: List[Paper],
    query: str,
    threshold_multiplier: float = 1.25,
    zero_score_bypass_ratio: float = 0.8,
) -> LexicalFilterResult:
    """Drop papers below the complexity-dependent BM25 floor.

    Papers must already carry `relevance_score`. The floor is skipped
    when more than `zero_score_bypass_ratio` of papers score zero.
    """
    complexity = classify_query_complexity(query)
    threshold = MIN_TERMS[complexity] * threshold_multiplier

    if not papers:
        return LexicalFilterResult([], threshold, complexity, False, 0.0)

    zero = sum(1 for p in papers if not p.relevance_score)
    zero_ratio = zero / len(papers)

    if zero_ratio > zero_score_bypass_ratio:
        warning = (
            f"lexical filter bypassed: {zero_ratio:.0%} of papers had no "
            f"query term match"
        )
        logger.warning(
            "lexical_filter_bypassed",
            zero_score_ratio=round(zero_ratio, 3),
            papers=len(papers),
        )
        return LexicalFilterResult(
            list(papers), threshold, complexity, True, zero_ratio, warning
        )

    kept = [p for p in papers if (p.relevance_score or 0.0) >= threshold]
    logger.info(
        "lexical_filter_applied",
        complexity=complexity.value,
        threshold=threshold,
        input=len(papers),
        kept=len(kept),
    )
    return LexicalFilterResult(kept, threshold, complexity, False, zero_ratio)
