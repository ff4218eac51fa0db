"""Paper record shared by every pipeline stage.

Papers are frozen. A stage that adds scores builds a new instance with
`with_scores`, so the contribution of each earlier stage stays visible.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from litrank.utils.text import normalize_doi, normalize_title


class ContentAvailability(str, Enum):
    """How much of the paper's text is available for scoring."""

    NONE = "none"
    ABSTRACT = "abstract"
    FULL_TEXT = "full_text"


class Author(BaseModel):
    """Paper author"""

    model_config = ConfigDict(frozen=True)

    name: str
    affiliation: Optional[str] = None


# Fields a stage may add or supersede; anything else is provider metadata.
SCORE_FIELDS = frozenset(
    {
        "relevance_score",
        "neural_relevance_score",
        "quality_score",
        "domain",
        "domain_confidence",
        "aspects",
        "citations_per_year",
        "abstract_word_count",
        "metadata_completeness",
        "content_availability",
        "citation_count",
        "venue",
    }
)


class Paper(BaseModel):
    """Normalized paper record produced by a SourceAdapter."""

    model_config = ConfigDict(frozen=True)

    paper_id: str = Field(..., min_length=1, description="Provider-scoped id")
    title: str = Field(..., min_length=1)
    doi: Optional[str] = None
    abstract: Optional[str] = None
    authors: List[Author] = Field(default_factory=list)
    year: Optional[int] = Field(None, ge=1000, le=3000)
    venue: Optional[str] = None
    citation_count: Optional[int] = Field(None, ge=0)
    url: Optional[str] = None
    source_provider: str = Field(..., min_length=1)
    content_availability: ContentAvailability = ContentAvailability.NONE

    # Stage outputs, unset until the owning stage runs
    relevance_score: Optional[float] = None
    neural_relevance_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    quality_score: Optional[float] = Field(None, ge=0.0, le=100.0)
    domain: Optional[str] = None
    domain_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    aspects: Optional[Dict[str, Any]] = None

    # Enrichment outputs
    citations_per_year: Optional[float] = Field(None, ge=0.0)
    abstract_word_count: Optional[int] = Field(None, ge=0)
    metadata_completeness: Optional[float] = Field(None, ge=0.0, le=1.0)

    @property
    def identity_key(self) -> str:
        """DOI-based key when a DOI exists, else the normalized title."""
        doi = normalize_doi(self.doi)
        if doi:
            return f"doi:{doi}"
        return f"title:{normalize_title(self.title)}"

    @property
    def ranking_score(self) -> float:
        """Neural relevance when present, else lexical relevance."""
        if self.neural_relevance_score is not None:
            return self.neural_relevance_score
        return self.relevance_score or 0.0

    @property
    def text(self) -> str:
        """Title plus abstract, the text every relevance stage looks at."""
        if self.abstract:
            return f"{self.title}. {self.abstract}"
        return self.title

    def with_scores(self, **updates: Any) -> "Paper":
        """Return a copy with stage outputs added or superseded.

        None values are ignored so a stage can never erase an earlier
        stage's score.
        """
        unknown = set(updates) - SCORE_FIELDS
        if unknown:
            raise ValueError(f"Not a stage field: {sorted(unknown)}")
        clean = {k: v for k, v in updates.items() if v is not None}
        if not clean:
            return self
        return self.model_copy(update=clean)
