"""Health checks and the HTTP server.

Provides:
- Health check implementations for the cache, disk and providers
- FastAPI app with /search, /health, /ready, /live and /metrics

Usage:
    from litrank.health import create_app

    app = create_app(service)
    uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from litrank.health.checks import (
    CheckResult,
    CheckStatus,
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from litrank.health.server import create_app, run_server

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "HealthReport",
    "CheckResult",
    "CheckStatus",
    "create_app",
    "run_server",
]
