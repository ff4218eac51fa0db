"""Unit tests for DeduplicationService."""

from litrank.models.paper import Paper
from litrank.services.dedup_service import DeduplicationService


def make_paper(paper_id: str, title: str, doi=None, provider: str = "openalex") -> Paper:
    return Paper(paper_id=paper_id, title=title, doi=doi, source_provider=provider)


class TestDedupe:
    """Tests for DeduplicationService.dedupe."""

    def test_no_duplicates(self):
        papers = [make_paper("1", "Bats"), make_paper("2", "Birds")]
        assert DeduplicationService().dedupe(papers) == papers

    def test_doi_duplicates_across_providers(self):
        """Test the first provider's record wins."""
        first = make_paper("s2-1", "Bat echolocation", "10.1/XYZ", "semantic_scholar")
        second = make_paper("oa-1", "Bat Echolocation.", "https://doi.org/10.1/xyz", "openalex")
        service = DeduplicationService()
        result = service.dedupe([first, second])
        assert result == [first]
        assert service.last_stats.duplicates_by_doi == 1
        assert service.last_stats.duplicates_by_title == 0

    def test_title_duplicates_without_doi(self):
        service = DeduplicationService()
        result = service.dedupe(
            [make_paper("1", "Bat Echolocation"), make_paper("2", "bat echolocation!")]
        )
        assert [p.paper_id for p in result] == ["1"]
        assert service.last_stats.duplicates_by_title == 1

    def test_same_title_different_doi_kept(self):
        """Test distinct DOIs are distinct works even with equal titles."""
        papers = [
            make_paper("1", "Editorial", "10.1/a"),
            make_paper("2", "Editorial", "10.1/b"),
        ]
        assert len(DeduplicationService().dedupe(papers)) == 2

    def test_order_preserved(self):
        papers = [make_paper(str(i), f"Paper {i % 3}") for i in range(9)]
        result = DeduplicationService().dedupe(papers)
        assert [p.paper_id for p in result] == ["0", "1", "2"]

    def test_idempotent(self):
        papers = [
            make_paper("1", "A", "10.1/a"),
            make_paper("2", "A", "10.1/a"),
            make_paper("3", "B"),
            make_paper("4", "b"),
        ]
        service = DeduplicationService()
        once = service.dedupe(papers)
        assert service.dedupe(once) == once
        assert service.last_stats.duplicates_found == 0

    def test_stats(self):
        service = DeduplicationService()
        service.dedupe([make_paper("1", "A"), make_paper("2", "A"), make_paper("3", "B")])
        stats = service.last_stats
        assert stats.total_papers_checked == 3
        assert stats.unique_papers == 2
        assert abs(stats.dedup_rate - 1 / 3) < 1e-9

    def test_empty_input(self):
        service = DeduplicationService()
        assert service.dedupe([]) == []
        assert service.last_stats.dedup_rate == 0.0
