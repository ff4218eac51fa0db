"""Static catalogue of known providers and the adapters wired to them.

Every known provider has a tier and a published rate limit. Only
providers with a registered SourceAdapter take part in a search.
"""

from typing import Dict, Iterable, List, Optional

import structlog

from litrank.models.config import AppConfig
from litrank.models.provider import ProviderInfo, ProviderTier
from litrank.services.providers.arxiv import ArxivAdapter
from litrank.services.providers.base import SourceAdapter
from litrank.services.providers.crossref import CrossrefAdapter
from litrank.services.providers.openalex import OpenAlexAdapter
from litrank.services.providers.semantic_scholar import SemanticScholarAdapter

logger = structlog.get_logger()


def _info(
    provider_id: str,
    display_name: str,
    tier: ProviderTier,
    rps: float = 1.0,
    burst: int = 1,
    api_key: bool = False,
) -> ProviderInfo:
    return ProviderInfo(
        provider_id=provider_id,
        display_name=display_name,
        tier=tier,
        requests_per_second=rps,
        burst=burst,
        requires_api_key=api_key,
    )


KNOWN_PROVIDERS: Dict[str, ProviderInfo] = {
    p.provider_id: p
    for p in [
        # Curated indexes and major publishers
        _info("web_of_science", "Web of Science", ProviderTier.PREMIUM, 2.0, 2, api_key=True),
        _info("scopus", "Scopus", ProviderTier.PREMIUM, 2.0, 2, api_key=True),
        _info("pubmed", "PubMed", ProviderTier.PREMIUM, 3.0, 3),
        _info("nature", "Nature", ProviderTier.PREMIUM, 1.0, 1, api_key=True),
        _info("springer", "Springer", ProviderTier.PREMIUM, 1.0, 2, api_key=True),
        _info("ieee_xplore", "IEEE Xplore", ProviderTier.PREMIUM, 1.0, 1, api_key=True),
        # Reliable academic sources
        _info("semantic_scholar", "Semantic Scholar", ProviderTier.GOOD, 1.0, 1),
        _info("pmc", "PubMed Central", ProviderTier.GOOD, 3.0, 3),
        _info("eric", "ERIC", ProviderTier.GOOD, 2.0, 2),
        _info("wiley", "Wiley", ProviderTier.GOOD, 1.0, 1, api_key=True),
        _info("sage", "SAGE", ProviderTier.GOOD, 1.0, 1, api_key=True),
        _info("taylor_francis", "Taylor & Francis", ProviderTier.GOOD, 1.0, 1, api_key=True),
        # Preprint servers
        _info("arxiv", "arXiv", ProviderTier.PREPRINT, 1 / 3, 1),
        _info("ssrn", "SSRN", ProviderTier.PREPRINT, 1.0, 1),
        # Aggregators
        _info("openalex", "OpenAlex", ProviderTier.AGGREGATOR, 10.0, 10),
        _info("crossref", "Crossref", ProviderTier.AGGREGATOR, 10.0, 5),
        _info("core", "CORE", ProviderTier.AGGREGATOR, 1.0, 1, api_key=True),
        _info("google_scholar", "Google Scholar", ProviderTier.AGGREGATOR, 0.5, 1),
    ]
}

# Tier order used for reporting and concatenation of results
TIER_ORDER = [
    ProviderTier.PREMIUM,
    ProviderTier.GOOD,
    ProviderTier.PREPRINT,
    ProviderTier.AGGREGATOR,
]


class ProviderRegistry:
    """Adapters keyed by provider id, classified by tier."""

    def __init__(
        self,
        adapters: Iterable[SourceAdapter] = (),
        catalogue: Optional[Dict[str, ProviderInfo]] = None,
    ):
        self.catalogue = dict(catalogue or KNOWN_PROVIDERS)
        self._adapters: Dict[str, SourceAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: SourceAdapter, info: Optional[ProviderInfo] = None) -> None:
        """Wire an adapter; unknown providers need an explicit ProviderInfo."""
        if info is not None:
            self.catalogue[adapter.name] = info
        if adapter.name not in self.catalogue:
            raise ValueError(f"Unknown provider '{adapter.name}'; pass a ProviderInfo")
        self._adapters[adapter.name] = adapter
        logger.debug("provider_registered", provider=adapter.name, tier=self.tier_of(adapter.name).value)

    def unregister(self, provider_id: str) -> None:
        self._adapters.pop(provider_id, None)

    def info(self, provider_id: str) -> ProviderInfo:
        return self.catalogue[provider_id]

    def tier_of(self, provider_id: str) -> ProviderTier:
        return self.catalogue[provider_id].tier

    def adapter(self, provider_id: str) -> SourceAdapter:
        return self._adapters[provider_id]

    @property
    def provider_ids(self) -> List[str]:
        """Registered providers in tier order, then registration order."""
        return sorted(
            self._adapters,
            key=lambda pid: TIER_ORDER.index(self.tier_of(pid)),
        )

    def select(self, sources: Optional[Iterable[str]] = None) -> List[str]:
        """Registered providers restricted to an allowlist.

        Raises:
            ValueError: If the allowlist names providers that are not
                registered.
        """
        if sources is None:
            return self.provider_ids
        wanted = list(sources)
        unknown = [s for s in wanted if s not in self._adapters]
        if unknown:
            raise ValueError(f"Unknown or unavailable sources: {', '.join(unknown)}")
        return [pid for pid in self.provider_ids if pid in wanted]

    def by_tier(self, provider_ids: Iterable[str]) -> Dict[ProviderTier, List[str]]:
        groups: Dict[ProviderTier, List[str]] = {tier: [] for tier in TIER_ORDER}
        for pid in provider_ids:
            groups[self.tier_of(pid)].append(pid)
        return {tier: pids for tier, pids in groups.items() if pids}


def build_default_registry(config: Optional[AppConfig] = None) -> ProviderRegistry:
    """Registry with the bundled adapters that need no credentials."""
    config = config or AppConfig()
    keys = config.provider_api_keys
    mailto = config.contact_email
    adapters: List[SourceAdapter] = [
        SemanticScholarAdapter(api_key=keys.get("semantic_scholar")),
        ArxivAdapter(),
        OpenAlexAdapter(mailto=mailto),
        CrossrefAdapter(mailto=mailto),
    ]
    registry = ProviderRegistry(adapters)

    enabled = config.router.enabled_providers
    if enabled is not None:
        for pid in list(registry.provider_ids):
            if pid not in enabled:
                registry.unregister(pid)
    return registry
