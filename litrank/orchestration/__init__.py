"""Search orchestration."""

from litrank.orchestration.search_pipeline import LiteratureSearchService

__all__ = ["LiteratureSearchService"]
