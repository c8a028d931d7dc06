"""Tests for pipeline configuration.

Covers:
- Default values
- Loading from environment variables
- Type coercion (string env vars → numeric fields)
- Fail-fast range validation
- Derived cache configuration
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from historic_borders.core.config import ConfigValidationError, PipelineConfig
from historic_borders.core.exceptions import ValidationError


class TestPipelineConfigDefaults:
    """Verify default configuration values."""

    def test_cache_disabled_by_default(self) -> None:
        cfg = PipelineConfig()
        assert cfg.redis_url == ""
        assert cfg.cache_config().enabled is False

    def test_default_timeouts(self) -> None:
        cfg = PipelineConfig()
        assert cfg.cache_op_timeout_s == 3.0
        assert cfg.cache_large_op_timeout_s == 30.0
        assert cfg.cache_connect_wait_s == 5.0

    def test_default_ttl_is_one_day(self) -> None:
        assert PipelineConfig().cache_ttl_seconds == 86400

    def test_default_label_thresholds(self) -> None:
        cfg = PipelineConfig()
        assert cfg.label_exact_max_vertices == 5000
        assert cfg.label_exact_max_features == 1000
        assert cfg.label_sample_cap == 500

    def test_default_sources(self) -> None:
        cfg = PipelineConfig()
        assert cfg.borders_base_url == "https://raw.githubusercontent.com"
        assert cfg.github_api_url == "https://api.github.com"
        assert cfg.districts_url == ""


class TestPipelineConfigFromEnv:
    """Verify loading from environment variables."""

    def test_loads_from_environment(self) -> None:
        """All env vars are read and coerced to correct types."""
        env = {
            "REDIS_URL": "redis://cache.internal:6380/1",
            "CACHE_OP_TIMEOUT_S": "1.5",
            "CACHE_LARGE_OP_TIMEOUT_S": "45",
            "CACHE_CONNECT_WAIT_S": "2",
            "CACHE_MAX_RETRIES": "5",
            "CACHE_TTL_SECONDS": "3600",
            "DISTRICTS_URL": "https://files.example.org/districts.geojson",
            "GITHUB_TOKEN": "ghp_test",
            "UPSTREAM_TIMEOUT_S": "90",
            "LABEL_EXACT_MAX_VERTICES": "2000",
            "LABEL_EXACT_MAX_FEATURES": "250",
            "LABEL_SAMPLE_CAP": "100",
        }
        with patch.dict(os.environ, env, clear=False):
            cfg = PipelineConfig.from_env()

        assert cfg.redis_url == "redis://cache.internal:6380/1"
        assert cfg.cache_op_timeout_s == 1.5
        assert cfg.cache_large_op_timeout_s == 45.0
        assert cfg.cache_connect_wait_s == 2.0
        assert cfg.cache_max_retries == 5
        assert cfg.cache_ttl_seconds == 3600
        assert cfg.districts_url == "https://files.example.org/districts.geojson"
        assert cfg.github_token == "ghp_test"
        assert cfg.upstream_timeout_s == 90.0
        assert cfg.label_exact_max_vertices == 2000
        assert cfg.label_exact_max_features == 250
        assert cfg.label_sample_cap == 100

    def test_defaults_when_env_missing(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            cfg = PipelineConfig.from_env()
        assert cfg == PipelineConfig()

    def test_unparseable_number_raises_value_error(self) -> None:
        with patch.dict(os.environ, {"CACHE_OP_TIMEOUT_S": "abc"}, clear=True), pytest.raises(ValueError):
            PipelineConfig.from_env()

    def test_cache_config_is_derived(self) -> None:
        env = {"REDIS_URL": "redis://localhost:6379/0", "CACHE_MAX_RETRIES": "7"}
        with patch.dict(os.environ, env, clear=True):
            cache_cfg = PipelineConfig.from_env().cache_config()
        assert cache_cfg.enabled is True
        assert cache_cfg.url == "redis://localhost:6379/0"
        assert cache_cfg.max_retries == 7
        assert cache_cfg.op_timeout_s == 3.0


class TestPipelineConfigValidation:
    """Fail-fast range validation."""

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("CACHE_OP_TIMEOUT_S", "0"),
            ("CACHE_CONNECT_WAIT_S", "-1"),
            ("UPSTREAM_TIMEOUT_S", "0"),
            ("CACHE_MAX_RETRIES", "-1"),
            ("CACHE_TTL_SECONDS", "0"),
            ("LABEL_EXACT_MAX_VERTICES", "3"),
            ("LABEL_EXACT_MAX_FEATURES", "0"),
            ("LABEL_SAMPLE_CAP", "0"),
        ],
    )
    def test_out_of_range_rejected(self, key: str, value: str) -> None:
        with patch.dict(os.environ, {key: value}, clear=True):
            with pytest.raises(ConfigValidationError) as exc_info:
                PipelineConfig.from_env()
        assert exc_info.value.key == key

    def test_large_timeout_below_op_timeout_rejected(self) -> None:
        env = {"CACHE_OP_TIMEOUT_S": "10", "CACHE_LARGE_OP_TIMEOUT_S": "5"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigValidationError) as exc_info:
                PipelineConfig.from_env()
        assert exc_info.value.key == "CACHE_LARGE_OP_TIMEOUT_S"

    def test_empty_borders_url_rejected(self) -> None:
        with patch.dict(os.environ, {"BORDERS_BASE_URL": ""}, clear=True):
            with pytest.raises(ConfigValidationError):
                PipelineConfig.from_env()

    def test_is_validation_error(self) -> None:
        err = ConfigValidationError("X", 1, "bad")
        assert isinstance(err, ValidationError)
        assert err.code == "CONFIG_VALIDATION_FAILED"
        assert err.retryable is False
        assert "X=1" in str(err)

    def test_config_is_frozen(self) -> None:
        cfg = PipelineConfig()
        with pytest.raises(AttributeError):
            cfg.redis_url = "redis://x"  # type: ignore[misc]
