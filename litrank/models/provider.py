"""Provider-level models: tiers, call outcomes and per-provider reporting."""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ProviderTier(str, Enum):
    """Static quality/reliability classification of a provider."""

    PREMIUM = "premium"
    GOOD = "good"
    PREPRINT = "preprint"
    AGGREGATOR = "aggregator"


class OutcomeKind(str, Enum):
    """Classified outcome of a single governed provider call."""

    OK = "ok"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    CIRCUIT_OPEN = "circuit_open"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    CANCELLED = "cancelled"


class ProviderInfo(BaseModel):
    """Registry entry describing a known provider."""

    model_config = ConfigDict(frozen=True)

    provider_id: str = Field(..., min_length=1)
    display_name: str
    tier: ProviderTier
    requests_per_second: float = Field(default=1.0, gt=0)
    burst: int = Field(default=1, ge=1)
    requires_api_key: bool = False


class ProviderContribution(BaseModel):
    """What one provider contributed to a search.

    `collected` counts raw papers before dedup, `final_count` counts
    papers that survived into the returned result set.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    tier: ProviderTier
    outcome: OutcomeKind
    collected: int = Field(default=0, ge=0)
    final_count: int = Field(default=0, ge=0)
    latency_ms: float = Field(default=0.0, ge=0.0)
    attempts: int = Field(default=0, ge=0)
    error: Optional[str] = None


class PartialFailureReport(BaseModel):
    """Outcome of a fan-out across providers."""

    model_config = ConfigDict(frozen=True)

    contributions: Tuple[ProviderContribution, ...] = ()
    deadline_reached: bool = False

    @property
    def failed_providers(self) -> List[str]:
        return [c.provider for c in self.contributions if c.outcome != OutcomeKind.OK]

    @property
    def succeeded_providers(self) -> List[str]:
        return [c.provider for c in self.contributions if c.outcome == OutcomeKind.OK]

    @property
    def all_failed(self) -> bool:
        """True when providers were queried and none of them succeeded."""
        return bool(self.contributions) and not self.succeeded_providers

    @property
    def collected_by_provider(self) -> Dict[str, int]:
        return {c.provider: c.collected for c in self.contributions}
