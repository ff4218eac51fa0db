"""Observability: correlation IDs, structured logging and Prometheus metrics.

Usage:
    from litrank.observability import correlation_id_context, get_logger

    with correlation_id_context():
        get_logger("cli").info("search_started")
"""

from litrank.observability.context import (
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    correlation_id_context,
)
from litrank.observability.logging import (
    get_logger,
    configure_logging,
    add_correlation_id_processor,
)
from litrank.observability.metrics import (
    # Counters
    PROVIDER_CALLS,
    PROVIDER_RETRIES,
    PAPERS_COLLECTED,
    SEARCHES_TOTAL,
    PIPELINE_DEGRADATIONS,
    CACHE_OPERATIONS,
    # Gauges
    BULKHEAD_IN_FLIGHT,
    CIRCUIT_STATE,
    CACHE_ENTRIES,
    # Histograms
    PROVIDER_LATENCY,
    STAGE_DURATION,
    STAGE_OUTPUT,
    # Registry and utilities
    REGISTRY,
    get_metrics_text,
    get_metrics_content_type,
)
from litrank.observability.stages import StageRecorder, StageOutput

__all__ = [
    # Context
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Logging
    "get_logger",
    "configure_logging",
    "add_correlation_id_processor",
    # Counters
    "PROVIDER_CALLS",
    "PROVIDER_RETRIES",
    "PAPERS_COLLECTED",
    "SEARCHES_TOTAL",
    "PIPELINE_DEGRADATIONS",
    "CACHE_OPERATIONS",
    # Gauges
    "BULKHEAD_IN_FLIGHT",
    "CIRCUIT_STATE",
    "CACHE_ENTRIES",
    # Histograms
    "PROVIDER_LATENCY",
    "STAGE_DURATION",
    "STAGE_OUTPUT",
    # Utilities
    "REGISTRY",
    "get_metrics_text",
    "get_metrics_content_type",
    # Stage timing
    "StageRecorder",
    "StageOutput",
]
