"""
Concurrent, tiered fan-out across academic providers.

All tiers start at once; a slow tier bounds latency instead of adding
to it. The router returns when every provider has finished, when the
global deadline elapses, or shortly after the minimum viable tier set
has finished, whichever comes first.
"""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import structlog

from litrank.models.config import RateLimitConfig, RouterConfig
from litrank.models.paper import Paper
from litrank.models.provider import (
    OutcomeKind,
    PartialFailureReport,
    ProviderContribution,
    ProviderTier,
)
from litrank.models.search import SearchRequest
from litrank.observability.metrics import PAPERS_COLLECTED
from litrank.services.governor import ProviderResult, ResilienceGovernor
from litrank.services.providers.base import SearchConstraints
from litrank.services.providers.registry import ProviderRegistry
from litrank.utils.cancellation import CancellationToken
from litrank.utils.exceptions import SearchCancelled

logger = structlog.get_logger()

# Bound on how long cancelled provider tasks may take to unwind
CANCEL_GRACE_SECONDS = 1.0


class SourceRouter:
    """Fan a query out to every selected provider through the governor."""

    def __init__(
        self,
        registry: ProviderRegistry,
        governor: ResilienceGovernor,
        config: Optional[RouterConfig] = None,
    ):
        self.registry = registry
        self.governor = governor
        self.config = config or RouterConfig()

        for pid in registry.provider_ids:
            info = registry.info(pid)
            governor.register_provider(
                pid, RateLimitConfig(requests_per_second=info.requests_per_second, burst=info.burst)
            )

    async def search(
        self,
        request: SearchRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> Tuple[List[Paper], PartialFailureReport]:
        """Query all selected providers concurrently.

        Returns:
            Papers in tier/provider order (each provider's own order kept)
            and the per-provider outcome report.

        Raises:
            SearchCancelled: If the token fires before the fan-out ends.
        """
        cancellation = cancellation or CancellationToken()
        cancellation.raise_if_cancelled()

        provider_ids = self.registry.select(request.sources)
        constraints = SearchConstraints(
            year_from=request.year_from,
            year_to=request.year_to,
            limit=self.config.per_provider_limit,
        )
        tiers = self.registry.by_tier(provider_ids)
        logger.info(
            "fanout_started",
            query=request.query[:100],
            providers=len(provider_ids),
            tiers={tier.value: pids for tier, pids in tiers.items()},
        )

        tasks: Dict[str, asyncio.Task] = {
            pid: asyncio.create_task(
                self._call(pid, request.query, constraints, cancellation),
                name=f"provider:{pid}",
            )
            for pid in provider_ids
        }

        try:
            cut_off = await self._wait(tasks, tiers, cancellation)
        except asyncio.CancelledError:
            await self._cancel(set(tasks), tasks)
            logger.info("fanout_task_cancelled", providers=len(tasks))
            raise

        if cut_off:
            await self._cancel(cut_off, tasks)
        if cancellation.cancelled:
            await self._cancel(set(tasks), tasks)
            logger.info("fanout_cancelled", reason=cancellation.reason)
            raise SearchCancelled(cancellation.reason or "cancelled")

        papers, report = self._collect(provider_ids, tasks, cut_off)
        return papers, report

    async def _call(
        self,
        provider_id: str,
        query: str,
        constraints: SearchConstraints,
        cancellation: CancellationToken,
    ) -> ProviderResult[List[Paper]]:
        adapter = self.registry.adapter(provider_id)
        return await self.governor.execute(
            provider_id,
            lambda: adapter.search(query, constraints, cancellation),
            cancellation,
        )

    def _viable_providers(self, tiers: Dict[ProviderTier, List[str]]) -> Set[str]:
        wanted = set(self.config.minimum_viable_tiers)
        return {pid for tier, pids in tiers.items() if tier.value in wanted for pid in pids}

    async def _wait(
        self,
        tasks: Dict[str, asyncio.Task],
        tiers: Dict[ProviderTier, List[str]],
        cancellation: CancellationToken,
    ) -> Set[str]:
        """Wait for the fan-out to settle.

        Returns:
            Provider ids still running when a deadline cut them off.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.global_timeout_seconds
        early_deadline: Optional[float] = None
        viable = self._viable_providers(tiers)
        pending: Set[asyncio.Task] = set(tasks.values())
        cancel_wait = asyncio.create_task(cancellation.wait())

        try:
            while pending:
                limit = deadline if early_deadline is None else min(deadline, early_deadline)
                remaining = limit - loop.time()
                if remaining <= 0:
                    break

                done, _ = await asyncio.wait(
                    pending | {cancel_wait},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cancel_wait in done:
                    return set()
                pending -= done

                if (
                    early_deadline is None
                    and pending
                    and viable
                    and all(tasks[pid].done() for pid in viable)
                ):
                    early_deadline = loop.time() + self.config.early_return_grace_seconds
                    logger.info(
                        "minimum_viable_tiers_complete",
                        viable=sorted(viable),
                        still_running=len(pending),
                        grace_seconds=self.config.early_return_grace_seconds,
                    )
        finally:
            cancel_wait.cancel()

        return {pid for pid, task in tasks.items() if not task.done()}

    async def _cancel(self, provider_ids: Set[str], tasks: Dict[str, asyncio.Task]) -> None:
        running = [tasks[pid] for pid in provider_ids if not tasks[pid].done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.wait(running, timeout=CANCEL_GRACE_SECONDS)

    def _collect(
        self,
        provider_ids: List[str],
        tasks: Dict[str, asyncio.Task],
        cut_off: Set[str],
    ) -> Tuple[List[Paper], PartialFailureReport]:
        papers: List[Paper] = []
        contributions: List[ProviderContribution] = []

        for pid in provider_ids:
            tier = self.registry.tier_of(pid)
            task = tasks[pid]

            if pid in cut_off or task.cancelled():
                contributions.append(
                    ProviderContribution(
                        provider=pid,
                        tier=tier,
                        outcome=OutcomeKind.TIMEOUT,
                        error="cut off by search deadline",
                        latency_ms=self.config.global_timeout_seconds * 1000,
                    )
                )
                logger.warning("provider_cut_off", provider=pid)
                continue

            error = task.exception()
            if error is not None:
                logger.error("provider_task_crashed", provider=pid, error=repr(error))
                contributions.append(
                    ProviderContribution(
                        provider=pid, tier=tier, outcome=OutcomeKind.PARSE_ERROR, error=repr(error)
                    )
                )
                continue

            result: ProviderResult[List[Paper]] = task.result()
            provider_papers = list(result.value or []) if result.ok else []
            papers.extend(provider_papers)
            PAPERS_COLLECTED.labels(provider=pid).inc(len(provider_papers))
            contributions.append(
                ProviderContribution(
                    provider=pid,
                    tier=tier,
                    outcome=result.outcome,
                    collected=len(provider_papers),
                    latency_ms=result.latency_ms,
                    attempts=result.attempts,
                    error=str(result.error) if result.error else None,
                )
            )

        report = PartialFailureReport(
            contributions=tuple(contributions), deadline_reached=bool(cut_off)
        )
        if report.all_failed:
            logger.error(
                "all_providers_failed",
                providers=[(c.provider, c.outcome.value) for c in contributions],
            )
        logger.info(
            "fanout_complete",
            collected=len(papers),
            succeeded=len(report.succeeded_providers),
            failed=report.failed_providers,
            deadline_reached=report.deadline_reached,
        )
        return papers, report
