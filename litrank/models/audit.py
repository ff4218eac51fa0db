"""Audit records returned with every search response."""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

from litrank.models.provider import OutcomeKind, ProviderContribution


class NeuralTier(str, Enum):
    """Which branch of the relevance cascade produced the ranking."""

    TIER0 = "neural_tier0"
    TIER1 = "neural_tier1"
    LEXICAL_FALLBACK = "lexical_fallback"


class StageMetrics(BaseModel):
    """Immutable measurement of one stage execution."""

    model_config = ConfigDict(frozen=True)

    name: str
    input_count: int = Field(..., ge=0)
    output_count: int = Field(..., ge=0)
    duration_ms: float = Field(..., ge=0.0)
    memory_delta_bytes: int = 0


class SearchAuditReport(BaseModel):
    """Per-request transparency report.

    `source_breakdown` counts raw papers per provider before dedup and
    always sums to `total_collected`. `final_breakdown` counts returned
    papers per provider and always sums to `final_count`.
    """

    model_config = ConfigDict(frozen=True)

    query: str
    purpose: str
    stages: Tuple[StageMetrics, ...] = ()
    providers: Tuple[ProviderContribution, ...] = ()
    source_breakdown: Dict[str, int] = Field(default_factory=dict)
    final_breakdown: Dict[str, int] = Field(default_factory=dict)
    total_collected: int = Field(0, ge=0)
    deduplicated_count: int = Field(0, ge=0)
    final_count: int = Field(0, ge=0)
    neural_tier: Optional[NeuralTier] = None
    pipeline_states: Tuple[str, ...] = ()
    degraded: bool = False
    deadline_reached: bool = False
    warnings: Tuple[str, ...] = ()
    total_duration_ms: float = Field(0.0, ge=0.0)
    cache_hit: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_providers(self) -> List[str]:
        return [p.provider for p in self.providers if p.outcome != OutcomeKind.OK]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_providers_failed(self) -> bool:
        return bool(self.providers) and all(
            p.outcome != OutcomeKind.OK for p in self.providers
        )

    def stage(self, name: str) -> Optional[StageMetrics]:
        for metrics in self.stages:
            if metrics.name == name:
                return metrics
        return None
