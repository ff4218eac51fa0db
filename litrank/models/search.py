"""Request and response models for the search API.

Requests fail closed: unknown fields are rejected and the query is
validated before any provider is contacted.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from litrank.models.audit import SearchAuditReport
from litrank.models.paper import Paper
from litrank.utils.exceptions import ValidationError
from litrank.utils.security import InputValidation


class ResearchPurpose(str, Enum):
    """Declared research purpose, used to pick adaptive thresholds."""

    Q_METHODOLOGY = "q_methodology"
    QUALITATIVE_ANALYSIS = "qualitative_analysis"
    LITERATURE_SYNTHESIS = "literature_synthesis"
    HYPOTHESIS_GENERATION = "hypothesis_generation"
    SURVEY_CONSTRUCTION = "survey_construction"


class SearchRequest(BaseModel):
    """Search request accepted by the API, CLI and service.

    Field names are accepted in snake_case or camelCase
    (`year_from` / `yearFrom`).
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "query": "primate social cognition",
                "sources": ["openalex", "crossref"],
                "yearFrom": 2015,
                "targetSize": 200,
                "purpose": "literature_synthesis",
                "page": 1,
                "limit": 20,
            }
        },
    )

    query: str = Field(..., min_length=1)
    sources: Optional[List[str]] = Field(
        default=None, description="Provider allowlist; all providers when omitted"
    )
    year_from: Optional[int] = Field(default=None, ge=1800, le=3000)
    year_to: Optional[int] = Field(default=None, ge=1800, le=3000)
    target_size: Optional[int] = Field(
        default=None, ge=1, le=5000, description="Overrides the purpose profile's target"
    )
    purpose: Optional[str] = Field(
        default=None, max_length=64, description="ResearchPurpose value"
    )
    page: int = Field(default=1, ge=1, le=10_000)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        return InputValidation.validate_query(v)

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        cleaned = [s.strip().lower() for s in v if s and s.strip()]
        if not cleaned:
            raise ValueError("sources must name at least one provider when given")
        # Preserve order, drop repeats
        return list(dict.fromkeys(cleaned))

    @field_validator("purpose")
    @classmethod
    def normalize_purpose(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @model_validator(mode="after")
    def validate_year_range(self) -> "SearchRequest":
        if self.year_from is not None and self.year_to is not None:
            if self.year_from > self.year_to:
                raise ValueError("year_from must not be after year_to")
        return self

    def cache_fields(self) -> Dict[str, Any]:
        """Fields that determine the ranked result set (paging excluded)."""
        return self.model_dump(exclude={"page", "limit"}, mode="json")


def parse_search_request(payload: Dict[str, Any]) -> SearchRequest:
    """Validate a raw payload into a SearchRequest.

    Raises:
        ValidationError: With the individual field errors attached.
    """
    try:
        return SearchRequest.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
        raise ValidationError(f"Invalid search request: {summary}", errors=errors) from e


class SearchResponse(BaseModel):
    """Caller-facing search result page."""

    model_config = ConfigDict(frozen=True)

    papers: List[Paper]
    total: int = Field(..., ge=0, description="Ranked papers across all pages")
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    metadata: SearchAuditReport
