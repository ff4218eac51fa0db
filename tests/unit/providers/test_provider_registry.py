"""Unit tests for ProviderRegistry."""

from typing import List

import pytest

from litrank.models.config import AppConfig, RouterConfig
from litrank.models.paper import Paper
from litrank.models.provider import ProviderInfo, ProviderTier
from litrank.services.providers.base import SourceAdapter
from litrank.services.providers.registry import (
    KNOWN_PROVIDERS,
    ProviderRegistry,
    build_default_registry,
)


class NamedAdapter(SourceAdapter):
    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query, constraints, cancellation=None) -> List[Paper]:
        return []


class TestCatalogue:
    def test_known_tiers(self):
        assert KNOWN_PROVIDERS["semantic_scholar"].tier == ProviderTier.GOOD
        assert KNOWN_PROVIDERS["arxiv"].tier == ProviderTier.PREPRINT
        assert KNOWN_PROVIDERS["openalex"].tier == ProviderTier.AGGREGATOR
        assert KNOWN_PROVIDERS["crossref"].tier == ProviderTier.AGGREGATOR

    def test_arxiv_rate_limit(self):
        assert KNOWN_PROVIDERS["arxiv"].requests_per_second == pytest.approx(1 / 3)


class TestProviderRegistry:
    """Tests for registration and selection."""

    def test_unknown_provider_needs_info(self):
        registry = ProviderRegistry()
        with pytest.raises(ValueError):
            registry.register(NamedAdapter("mystery"))

    def test_register_with_info(self):
        registry = ProviderRegistry()
        info = ProviderInfo(provider_id="mystery", display_name="Mystery", tier=ProviderTier.PREMIUM)
        registry.register(NamedAdapter("mystery"), info)
        assert registry.tier_of("mystery") == ProviderTier.PREMIUM
        assert registry.info("mystery") == info

    def test_provider_ids_in_tier_order(self):
        registry = ProviderRegistry(
            [NamedAdapter("crossref"), NamedAdapter("arxiv"), NamedAdapter("pubmed"), NamedAdapter("openalex")]
        )
        assert registry.provider_ids == ["pubmed", "arxiv", "crossref", "openalex"]

    def test_select_allowlist(self):
        registry = ProviderRegistry([NamedAdapter("crossref"), NamedAdapter("arxiv")])
        assert registry.select(None) == ["arxiv", "crossref"]
        assert registry.select(["crossref"]) == ["crossref"]

    def test_select_unknown_source(self):
        registry = ProviderRegistry([NamedAdapter("crossref")])
        with pytest.raises(ValueError, match="scopus"):
            registry.select(["crossref", "scopus"])

    def test_unregister(self):
        registry = ProviderRegistry([NamedAdapter("crossref")])
        registry.unregister("crossref")
        assert registry.provider_ids == []

    def test_by_tier(self):
        registry = ProviderRegistry([NamedAdapter("crossref"), NamedAdapter("semantic_scholar")])
        groups = registry.by_tier(registry.provider_ids)
        assert groups == {
            ProviderTier.GOOD: ["semantic_scholar"],
            ProviderTier.AGGREGATOR: ["crossref"],
        }


class TestBuildDefaultRegistry:
    def test_bundled_adapters(self):
        registry = build_default_registry()
        assert registry.provider_ids == ["semantic_scholar", "arxiv", "openalex", "crossref"]

    def test_enabled_providers_filter(self):
        config = AppConfig(router=RouterConfig(enabled_providers=["arxiv", "crossref"]))
        assert build_default_registry(config).provider_ids == ["arxiv", "crossref"]

    def test_api_key_and_mailto_wired(self):
        config = AppConfig(
            provider_api_keys={"semantic_scholar": "k"}, contact_email="team@example.org"
        )
        registry = build_default_registry(config)
        assert registry.adapter("semantic_scholar").api_key == "k"
        assert registry.adapter("openalex").mailto == "team@example.org"
