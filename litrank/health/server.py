"""FastAPI server for searches, health probes and metrics.

Endpoints:
- POST /search - run a literature search
- /health      - full health check
- /ready       - readiness probe
- /live        - liveness probe
- /metrics     - Prometheus metrics in text format

Usage:
    from litrank.health.server import create_app
    app = create_app(LiteratureSearchService.from_config(config))
"""

import json
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from litrank import __version__
from litrank.health.checks import HealthChecker, HealthStatus
from litrank.observability.metrics import get_metrics_content_type, get_metrics_text
from litrank.orchestration.search_pipeline import LiteratureSearchService
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import SearchCancelled, ValidationError

logger = structlog.get_logger()

# nginx's "client closed request"
HTTP_CLIENT_CLOSED_REQUEST = 499


def create_app(
    service: LiteratureSearchService,
    checker: Optional[HealthChecker] = None,
    title: str = "litrank",
) -> FastAPI:
    """Create the FastAPI application around one search service.

    Args:
        service: Shared service; closed when the app shuts down.
        checker: Health checker; one watching the service's cache and
            governor is created when omitted.
        title: API title
    """
    if checker is None:
        cache_dir = service.cache.cache_dir if service.cache.enabled else None
        checker = HealthChecker(cache_dir=cache_dir, governor=service.governor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("server_starting", providers=service.registry.provider_ids)
        yield
        service.close()
        logger.info("server_stopping")

    app = FastAPI(
        title=title,
        version=__version__,
        description="Concurrent literature search with a tiered relevance pipeline",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.checker = checker

    @app.post(
        "/search",
        response_model=None,
        summary="Run a literature search",
        responses={
            200: {"description": "Ranked papers with the audit report"},
            400: {"description": "Invalid request; no provider was contacted"},
            499: {"description": "Search cancelled"},
        },
    )
    async def search(request: Request) -> Response:
        try:
            payload = await request.json()
        except json.JSONDecodeError as e:
            return JSONResponse(
                content={"error": f"Request body is not valid JSON: {e}"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            response = await service.search(payload, CancellationToken())
        except ValidationError as e:
            return JSONResponse(
                content={"error": str(e), "errors": e.errors},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        except SearchCancelled as e:
            return JSONResponse(
                content={"error": f"Search cancelled: {e}"},
                status_code=HTTP_CLIENT_CLOSED_REQUEST,
            )
        return JSONResponse(content=response.model_dump(mode="json"))

    @app.get(
        "/health",
        response_model=None,
        summary="Full health check",
        responses={
            200: {"description": "Healthy or degraded"},
            503: {"description": "One or more checks failed"},
        },
    )
    async def health_check() -> Response:
        report = await checker.check_all()
        status_code = (
            status.HTTP_200_OK
            if report.status != HealthStatus.UNHEALTHY
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(content=report.to_dict(), status_code=status_code)

    @app.get("/ready", response_model=None, summary="Readiness probe")
    async def readiness_probe() -> Response:
        if await checker.is_ready():
            return JSONResponse(
                content={"ready": True, "message": "Service is ready"},
                status_code=status.HTTP_200_OK,
            )
        return JSONResponse(
            content={"ready": False, "message": "Service is not ready"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.get("/live", response_model=None, summary="Liveness probe")
    async def liveness_probe() -> Response:
        return JSONResponse(
            content={"alive": await checker.is_alive(), "message": "Service is alive"},
            status_code=status.HTTP_200_OK,
        )

    @app.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=get_metrics_text(), media_type=get_metrics_content_type())

    @app.get("/", response_model=None, summary="Root endpoint")
    async def root() -> Dict[str, Any]:
        return {
            "name": title,
            "version": __version__,
            "providers": service.registry.provider_ids,
            "endpoints": {
                "search": "/search",
                "health": "/health",
                "ready": "/ready",
                "live": "/live",
                "metrics": "/metrics",
            },
        }

    return app


def run_server(  # pragma: no cover
    service: LiteratureSearchService,
    host: str = "0.0.0.0",
    port: int = 8000,
    log_level: str = "info",
) -> None:
    """Run the server (blocking)."""
    import uvicorn

    app = create_app(service)
    logger.info("server_listening", host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
