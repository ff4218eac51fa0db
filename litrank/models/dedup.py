"""Data models for deduplication."""

from pydantic import BaseModel


class DedupStats(BaseModel):
    """Deduplication statistics for one pass"""

    total_papers_checked: int = 0
    duplicates_found: int = 0
    duplicates_by_doi: int = 0
    duplicates_by_title: int = 0

    @property
    def unique_papers(self) -> int:
        return self.total_papers_checked - self.duplicates_found

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate"""
        if self.total_papers_checked == 0:
            return 0.0
        return self.duplicates_found / self.total_papers_checked
