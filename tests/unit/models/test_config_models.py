"""Unit tests for configuration models."""

import pytest
from pydantic import ValidationError

from litrank.models.config import (
    AppConfig,
    BulkheadConfig,
    CacheConfig,
    EmbeddingConfig,
    GovernorConfig,
    RetryConfig,
    SamplingConfig,
)


class TestDefaults:
    """Tests that defaults are usable without a config file."""

    def test_app_config_defaults(self):
        config = AppConfig()
        assert config.router.global_timeout_seconds == 30.0
        assert config.router.minimum_viable_tiers == ["premium", "good"]
        assert config.sampling.max_provider_share == 0.30
        assert config.cache.eviction_policy == "least-recently-used"
        assert config.embedding.enabled is False

    def test_retry_defaults(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay_seconds == 0.5


class TestValidation:
    """Tests for rejected configurations."""

    def test_unknown_keys_rejected(self):
        """Test typos in YAML fail loudly."""
        with pytest.raises(ValidationError):
            AppConfig(routr={})

    def test_strata_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            SamplingConfig(strata=[0.5, 0.5, 0.5, 0.0])

    def test_strata_need_four_bands(self):
        with pytest.raises(ValidationError):
            SamplingConfig(strata=[0.5, 0.5])

    def test_negative_stratum_rejected(self):
        with pytest.raises(ValidationError):
            SamplingConfig(strata=[1.2, -0.2, 0.0, 0.0])

    def test_unknown_eviction_policy_rejected(self):
        with pytest.raises(ValidationError):
            CacheConfig(eviction_policy="random")

    def test_placeholder_api_key_rejected(self):
        """Test unsubstituted ${VAR} placeholders are caught."""
        with pytest.raises(ValidationError):
            EmbeddingConfig(api_key="${OPENAI_API_KEY}")

    def test_per_provider_bulkhead_cannot_exceed_global(self):
        with pytest.raises(ValidationError):
            AppConfig(
                governor=GovernorConfig(
                    bulkhead=BulkheadConfig(max_concurrent_per_provider=8, max_concurrent_global=4)
                )
            )

    def test_retry_attempts_bounded(self):
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)
