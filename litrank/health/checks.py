"""Health checks for the search service.

Checks:
- Disk space where the query cache lives
- Query cache directory is writable
- Circuit breaker states across providers
- Provider reachability (optional, makes outbound requests)

Usage:
    checker = HealthChecker(cache_dir=Path("./cache/queries"), governor=governor)
    report = await checker.check_all()
"""

import asyncio
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from litrank.services.governor import ResilienceGovernor

logger = structlog.get_logger()

# Cheap endpoints that answer without credentials
PROBE_URLS = {
    "semantic_scholar": "https://api.semanticscholar.org/",
    "openalex": "https://api.openalex.org/works?per-page=1",
    "crossref": "https://api.crossref.org/works?rows=0",
    "arxiv": "https://export.arxiv.org/api/query?search_query=test&max_results=1",
}

PROBE_ATTEMPTS = 2


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: CheckStatus
    message: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": round(self.duration_ms, 2),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class HealthReport:
    status: HealthStatus
    checks: List[CheckResult]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": [c.to_dict() for c in self.checks],
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """Health checker for the search service and its providers."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        governor: Optional[ResilienceGovernor] = None,
        probe_providers: Iterable[str] = (),
        disk_threshold_gb: float = 1.0,
        disk_warning_gb: float = 5.0,
        check_timeout_seconds: float = 10.0,
    ):
        """Initialize health checker.

        Args:
            cache_dir: Query cache directory; skipped when None.
            governor: Source of circuit breaker states.
            probe_providers: Provider ids to probe over HTTP.
            disk_threshold_gb: Free space below this fails.
            disk_warning_gb: Free space below this warns.
            check_timeout_seconds: Timeout per probe attempt.
        """
        self.cache_dir = cache_dir
        self.governor = governor
        self.probe_providers = [p for p in probe_providers if p in PROBE_URLS]
        self.disk_threshold_gb = disk_threshold_gb
        self.disk_warning_gb = disk_warning_gb
        self.check_timeout_seconds = check_timeout_seconds

    async def check_all(self) -> HealthReport:
        """Run every check concurrently."""
        checks: List[CheckResult] = [self.check_disk_space(), self.check_circuit_breakers()]
        if self.cache_dir is not None:
            checks.append(self.check_cache_directory())
        if self.probe_providers:
            checks.extend(
                await asyncio.gather(*(self.check_provider(pid) for pid in self.probe_providers))
            )
        return HealthReport(status=self._determine_overall_status(checks), checks=checks)

    @staticmethod
    def _determine_overall_status(checks: List[CheckResult]) -> HealthStatus:
        if any(c.status == CheckStatus.FAIL for c in checks):
            return HealthStatus.UNHEALTHY
        if any(c.status == CheckStatus.WARN for c in checks):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def _disk_root(self) -> Path:
        path = self.cache_dir or Path.cwd()
        while not path.exists() and path != path.parent:
            path = path.parent
        return path

    def check_disk_space(self) -> CheckResult:
        start = time.perf_counter()
        name = "disk_space"
        try:
            total, used, free = shutil.disk_usage(self._disk_root())
        except OSError as e:
            logger.error("disk_space_check_failed", error=str(e))
            return CheckResult(name, CheckStatus.FAIL, f"Disk check failed: {e}")

        free_gb = free / (1024**3)
        details = {
            "free_gb": round(free_gb, 2),
            "total_gb": round(total / (1024**3), 2),
            "used_percent": round(used / total * 100, 1) if total else 0.0,
        }
        duration_ms = (time.perf_counter() - start) * 1000

        if free_gb < self.disk_threshold_gb:
            status, message = CheckStatus.FAIL, f"Disk space critical: {free_gb:.1f}GB free"
        elif free_gb < self.disk_warning_gb:
            status, message = CheckStatus.WARN, f"Disk space low: {free_gb:.1f}GB free"
        else:
            status, message = CheckStatus.PASS, f"Disk space OK: {free_gb:.1f}GB free"
        return CheckResult(name, status, message, duration_ms, details)

    def check_cache_directory(self) -> CheckResult:
        start = time.perf_counter()
        name = "cache_directory"
        assert self.cache_dir is not None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            probe = self.cache_dir / ".health_check"
            probe.write_text("health_check")
            probe.unlink()
        except OSError as e:
            return CheckResult(
                name,
                CheckStatus.FAIL,
                f"Cache directory not writable: {e}",
                (time.perf_counter() - start) * 1000,
            )

        return CheckResult(
            name,
            CheckStatus.PASS,
            "Cache directory accessible",
            (time.perf_counter() - start) * 1000,
            {"path": str(self.cache_dir.absolute())},
        )

    def check_circuit_breakers(self) -> CheckResult:
        """Warn while any breaker is open; fail when all of them are."""
        name = "circuit_breakers"
        if self.governor is None:
            return CheckResult(name, CheckStatus.PASS, "No governor attached")

        stats = self.governor.breakers.get_all_stats()
        states = {pid: s["state"] for pid, s in stats.items()}
        open_ids = sorted(pid for pid, state in states.items() if state == "open")

        if open_ids and len(open_ids) == len(states):
            status, message = CheckStatus.FAIL, "All provider circuits are open"
        elif open_ids:
            status, message = CheckStatus.WARN, f"Open circuits: {', '.join(open_ids)}"
        else:
            status, message = CheckStatus.PASS, "No open circuits"
        return CheckResult(name, status, message, details={"states": states})

    @retry(
        stop=stop_after_attempt(PROBE_ATTEMPTS),
        wait=wait_fixed(0.5),
        retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _probe(self, url: str) -> int:
        timeout = aiohttp.ClientTimeout(total=self.check_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                return response.status

    async def check_provider(self, provider_id: str) -> CheckResult:
        """Reachability of one provider; problems only ever warn."""
        start = time.perf_counter()
        name = f"provider:{provider_id}"
        try:
            status_code = await self._probe(PROBE_URLS[provider_id])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("provider_probe_failed", provider=provider_id, error=str(e))
            return CheckResult(
                name,
                CheckStatus.WARN,
                f"{provider_id} unreachable: {str(e) or type(e).__name__}",
                (time.perf_counter() - start) * 1000,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        details = {"status_code": status_code}
        if status_code < 400:
            return CheckResult(name, CheckStatus.PASS, f"{provider_id} reachable", duration_ms, details)
        return CheckResult(
            name, CheckStatus.WARN, f"{provider_id} returned status {status_code}", duration_ms, details
        )

    async def is_ready(self) -> bool:
        """Ready when local dependencies pass; providers are not consulted."""
        checks = [self.check_disk_space()]
        if self.cache_dir is not None:
            checks.append(self.check_cache_directory())
        return all(c.status != CheckStatus.FAIL for c in checks)

    async def is_alive(self) -> bool:
        return True
