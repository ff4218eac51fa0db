"""Configuration models for the search service.

Covers:
- Resilience settings (retry, circuit breaker, rate limit, bulkhead)
- Fan-out deadlines for the source router
- Relevance, sampling and cache settings
- Embedding endpoint and logging settings

All models reject unknown keys so that typos in YAML fail loudly.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RetryConfig(BaseModel):
    """Configuration for retry logic with exponential backoff

    Controls retry behavior for transient provider failures:
    - Number of attempts before giving up
    - Delay calculation parameters
    - Jitter for request spreading
    """

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "max_attempts": 3,
                "base_delay_seconds": 0.5,
                "max_delay_seconds": 10.0,
                "jitter_factor": 0.1,
            }
        },
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts (1 initial + N-1 retries)",
    )
    base_delay_seconds: float = Field(
        default=0.5,
        gt=0.0,
        le=60.0,
        description="Base delay for exponential backoff",
    )
    max_delay_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Cap for computed backoff (not applied to retry-after)",
    )
    jitter_factor: float = Field(
        default=0.1,
        ge=0.0,
        le=0.5,
        description="Jitter factor for randomization",
    )


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker pattern

    - CLOSED: Normal operation, requests allowed
    - OPEN: After failure threshold, requests blocked
    - HALF_OPEN: After cooldown, one probe request at a time
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Whether circuit breaker is enabled")
    failure_threshold: int = Field(
        default=5, ge=1, le=50, description="Consecutive failures to open circuit"
    )
    success_threshold: int = Field(
        default=1, ge=1, le=10, description="Consecutive successes to close from half-open"
    )
    cooldown_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Seconds before transitioning from OPEN to HALF_OPEN",
    )


class RateLimitConfig(BaseModel):
    """Token bucket settings for one provider."""

    model_config = ConfigDict(extra="forbid")

    requests_per_second: float = Field(default=1.0, gt=0.0, le=1000.0)
    burst: int = Field(default=1, ge=1, le=1000)


class BulkheadConfig(BaseModel):
    """Concurrency isolation limits."""

    model_config = ConfigDict(extra="forbid")

    max_concurrent_per_provider: int = Field(default=2, ge=1, le=100)
    max_concurrent_global: int = Field(default=16, ge=1, le=1000)
    acquire_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        le=120.0,
        description="Wait for a slot before failing with ResourceExhausted; 0 fails fast",
    )


class GovernorConfig(BaseModel):
    """Everything wrapped around a single provider call."""

    model_config = ConfigDict(extra="forbid")

    call_timeout_seconds: float = Field(default=15.0, gt=0.0, le=300.0)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    bulkhead: BulkheadConfig = Field(default_factory=BulkheadConfig)
    default_rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    rate_limits: Dict[str, RateLimitConfig] = Field(
        default_factory=dict, description="Per-provider overrides keyed by provider id"
    )


class RouterConfig(BaseModel):
    """Fan-out deadlines for the source router."""

    model_config = ConfigDict(extra="forbid")

    global_timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)
    per_provider_limit: int = Field(default=20, ge=1, le=500)
    minimum_viable_tiers: List[str] = Field(
        default_factory=lambda: ["premium", "good"],
        description="Tiers whose completion allows an early return",
    )
    early_return_grace_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Extra wait for slower tiers once the viable set is done",
    )
    enabled_providers: Optional[List[str]] = Field(
        default=None, description="Restrict fan-out to these providers"
    )


class RelevanceConfig(BaseModel):
    """Lexical and neural stage settings."""

    model_config = ConfigDict(extra="forbid")

    bm25_k1: float = Field(default=1.2, gt=0.0, le=3.0)
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0)
    lexical_threshold_multiplier: float = Field(default=1.25, gt=0.0, le=5.0)
    zero_score_bypass_ratio: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Skip the lexical floor when this share of papers scores 0",
    )
    neural_enabled: bool = True
    max_neural_papers: int = Field(default=1500, ge=1, le=10000)
    neural_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)
    min_neural_survivors: int = Field(default=5, ge=1, le=1000)
    lexical_fallback_size: int = Field(default=100, ge=1, le=5000)
    domain_confidence_threshold: float = Field(default=0.80, ge=0.0, le=1.0)


class SamplingConfig(BaseModel):
    """Diversity sampler settings."""

    model_config = ConfigDict(extra="forbid")

    max_provider_share: float = Field(default=0.30, gt=0.0, le=1.0)
    min_providers_for_cap: int = Field(default=3, ge=1, le=50)
    strata: List[float] = Field(
        default_factory=lambda: [0.40, 0.35, 0.20, 0.05],
        description="Share of the target taken from each quality band, best first",
    )
    seed: Optional[int] = Field(default=None, description="Fixed seed for reproducible sampling")

    @field_validator("strata")
    @classmethod
    def validate_strata(cls, v: List[float]) -> List[float]:
        if len(v) != 4 or any(s < 0 for s in v):
            raise ValueError("strata must list four non-negative shares (top, upper mid, mid, lower)")
        if not 0.99 <= sum(v) <= 1.01:
            raise ValueError(f"strata must sum to 1.0, got {sum(v)}")
        return v


class CacheConfig(BaseModel):
    """Query result cache configuration"""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    cache_dir: str = "./cache/queries"
    ttl_seconds: int = Field(default=3600, ge=1, le=7 * 86400)
    max_entries: int = Field(default=500, ge=1, le=100_000)
    max_size_mb: int = Field(default=256, ge=1, le=100_000)
    eviction_policy: str = Field(default="least-recently-used")

    @field_validator("eviction_policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        allowed = {"least-recently-stored", "least-recently-used", "least-frequently-used"}
        if v not in allowed:
            raise ValueError(f"eviction_policy must be one of {sorted(allowed)}")
        return v


class EmbeddingConfig(BaseModel):
    """OpenAI-compatible embeddings endpoint."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    base_url: str = "https://api.openai.com/v1"
    model: str = "text-embedding-3-small"
    api_key: Optional[str] = Field(default=None, min_length=1)
    batch_size: int = Field(default=64, ge=1, le=2048)
    timeout_seconds: float = Field(default=20.0, gt=0.0, le=300.0)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Reject placeholders left in config templates"""
        if v is not None and (v in ["YOUR_API_KEY", "PLACEHOLDER", "None"] or v.startswith("${")):
            raise ValueError("API key must be a valid credential from environment variable")
        return v


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    json_output: bool = True


class AppConfig(BaseModel):
    """Root configuration loaded by ConfigManager."""

    model_config = ConfigDict(extra="forbid")

    governor: GovernorConfig = Field(default_factory=GovernorConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    relevance: RelevanceConfig = Field(default_factory=RelevanceConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    track_memory: bool = Field(
        default=False, description="Record tracemalloc deltas in stage metrics"
    )
    provider_api_keys: Dict[str, str] = Field(default_factory=dict)
    contact_email: Optional[str] = Field(
        default=None, description="Sent as mailto to OpenAlex and Crossref polite pools"
    )

    @model_validator(mode="after")
    def validate_bulkhead(self) -> "AppConfig":
        bulkhead = self.governor.bulkhead
        if bulkhead.max_concurrent_per_provider > bulkhead.max_concurrent_global:
            raise ValueError("per-provider concurrency cannot exceed the global limit")
        return self
