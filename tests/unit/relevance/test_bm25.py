"""Unit tests for BM25 scoring and the lexical filter."""

import pytest

from litrank.models.paper import Paper
from litrank.services.relevance.bm25 import (
    BM25Scorer,
    QueryComplexity,
    classify_query_complexity,
    lexical_filter,
)


def make_paper(pid: str, title: str, abstract=None, score=None) -> Paper:
    return Paper(
        paper_id=pid,
        title=title,
        abstract=abstract,
        source_provider="openalex",
        relevance_score=score,
    )


class TestClassifyQueryComplexity:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("bats", QueryComplexity.BROAD),
            ("the bats of texas", QueryComplexity.BROAD),
            ("primate social cognition", QueryComplexity.SPECIFIC),
            ("primate social learning tool use wild populations", QueryComplexity.COMPREHENSIVE),
        ],
    )
    def test_by_term_count(self, query, expected):
        assert classify_query_complexity(query) == expected


class TestBM25Scorer:
    """Tests for BM25Scorer.score_all."""

    def test_matching_beats_non_matching(self):
        papers = [
            make_paper("1", "Coral reef bleaching"),
            make_paper("2", "Bat echolocation calls"),
        ]
        scored = BM25Scorer().score_all("bat echolocation", papers)
        assert scored[0].relevance_score == 0.0
        assert scored[1].relevance_score > 0.0
        assert [p.paper_id for p in scored] == ["1", "2"]

    def test_title_match_outweighs_abstract_match(self):
        papers = [
            make_paper("title", "Bats", "Night field notes"),
            make_paper("abstract", "Night flight", "Bats observed"),
        ]
        scored = BM25Scorer().score_all("bats", papers)
        assert scored[0].relevance_score > scored[1].relevance_score

    def test_phrase_bonus(self):
        papers = [
            make_paper("phrase", "Social learning primates"),
            make_paper("scrambled", "Learning social primates"),
        ]
        scored = BM25Scorer().score_all("social learning", papers)
        assert scored[0].relevance_score > scored[1].relevance_score

    def test_partial_coverage_penalized(self):
        papers = [
            make_paper("both", "Bats roost caves"),
            make_paper("one", "Bats roost trees"),
        ]
        scored = BM25Scorer().score_all("bats caves", papers)
        assert scored[0].relevance_score > scored[1].relevance_score

    def test_stopword_only_query_scores_zero(self):
        scored = BM25Scorer().score_all("the of and", [make_paper("1", "Bats")])
        assert scored[0].relevance_score == 0.0

    def test_empty_input(self):
        assert BM25Scorer().score_all("bats", []) == []


class TestLexicalFilter:
    """Tests for the complexity-dependent lexical floor."""

    def test_threshold_applied(self):
        papers = [make_paper(str(i), f"P{i}", score=s) for i, s in enumerate([0.0, 1.0, 2.0, 3.0, 0.0])]
        result = lexical_filter(papers, "bats", threshold_multiplier=1.25)
        assert result.threshold == 1.25
        assert result.complexity == QueryComplexity.BROAD
        assert [p.paper_id for p in result.papers] == ["2", "3"]
        assert not result.bypassed
        assert result.warning is None

    def test_specific_query_has_higher_floor(self):
        result = lexical_filter([], "primate social cognition", threshold_multiplier=1.25)
        assert result.threshold == 2.5

    def test_bypassed_when_most_papers_score_zero(self):
        papers = [make_paper(str(i), f"P{i}", score=0.0) for i in range(9)]
        papers.append(make_paper("hit", "Hit", score=0.5))
        result = lexical_filter(papers, "bats", zero_score_bypass_ratio=0.8)
        assert result.bypassed
        assert len(result.papers) == 10
        assert result.zero_score_ratio == pytest.approx(0.9)
        assert "bypassed" in result.warning

    def test_exactly_at_bypass_ratio_still_filters(self):
        papers = [make_paper(str(i), f"P{i}", score=0.0) for i in range(4)]
        papers.append(make_paper("hit", "Hit", score=5.0))
        result = lexical_filter(papers, "bats", zero_score_bypass_ratio=0.8)
        assert not result.bypassed
        assert [p.paper_id for p in result.papers] == ["hit"]
