"""Prometheus metrics for the search pipeline.

Tracks:
- Provider call outcomes and latency
- Bulkhead occupancy and circuit breaker state
- Stage throughput and duration
- Cache performance
- Search outcomes and degradations

Usage:
    from litrank.observability.metrics import PROVIDER_CALLS, STAGE_DURATION

    PROVIDER_CALLS.labels(provider="crossref", outcome="ok").inc()

    with STAGE_DURATION.labels(stage="dedup").time():
        papers = deduplicator.dedupe(papers)

Metrics are exposed via the /metrics endpoint of the HTTP server.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with the default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

PROVIDER_CALLS = Counter(
    name="litrank_provider_calls_total",
    documentation="Governed provider calls by classified outcome",
    labelnames=["provider", "outcome"],  # ok, timeout, rate_limited, ...
    registry=REGISTRY,
)

PROVIDER_RETRIES = Counter(
    name="litrank_provider_retries_total",
    documentation="Retries scheduled for provider calls",
    labelnames=["provider"],
    registry=REGISTRY,
)

PAPERS_COLLECTED = Counter(
    name="litrank_papers_collected_total",
    documentation="Raw papers returned by providers before dedup",
    labelnames=["provider"],
    registry=REGISTRY,
)

SEARCHES_TOTAL = Counter(
    name="litrank_searches_total",
    documentation="Search requests by result status",
    labelnames=["status"],  # success, partial, all_failed, cancelled, invalid
    registry=REGISTRY,
)

PIPELINE_DEGRADATIONS = Counter(
    name="litrank_pipeline_degradations_total",
    documentation="Relevance pipeline runs that used a fallback tier",
    labelnames=["tier"],  # neural_tier1, lexical_fallback
    registry=REGISTRY,
)

CACHE_OPERATIONS = Counter(
    name="litrank_cache_operations_total",
    documentation="Query cache operations",
    labelnames=["operation"],  # hit, miss, set, evict, error
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

BULKHEAD_IN_FLIGHT = Gauge(
    name="litrank_bulkhead_in_flight",
    documentation="Provider calls currently holding a bulkhead slot",
    labelnames=["scope"],  # global or provider id
    registry=REGISTRY,
)

CIRCUIT_STATE = Gauge(
    name="litrank_circuit_state",
    documentation="Circuit breaker state (0=closed, 1=half_open, 2=open)",
    labelnames=["provider"],
    registry=REGISTRY,
)

CACHE_ENTRIES = Gauge(
    name="litrank_cache_entries",
    documentation="Entries held in the query cache",
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

PROVIDER_LATENCY = Histogram(
    name="litrank_provider_latency_seconds",
    documentation="Governed provider call latency including retries",
    labelnames=["provider"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30, 60, float("inf")),
    registry=REGISTRY,
)

STAGE_DURATION = Histogram(
    name="litrank_stage_duration_seconds",
    documentation="Pipeline stage duration",
    labelnames=["stage"],
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30, float("inf")),
    registry=REGISTRY,
)

STAGE_OUTPUT = Histogram(
    name="litrank_stage_output_papers",
    documentation="Papers leaving each stage",
    labelnames=["stage"],
    buckets=(0, 10, 50, 100, 250, 500, 1000, 2500, 5000, float("inf")),
    registry=REGISTRY,
)

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def get_metrics_text() -> bytes:
    """Prometheus exposition text for REGISTRY."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


