"""Pipeline configuration loaded from environment variables.

Azure Functions app settings (or ``local.settings.json`` for local dev)
are the source of truth.  ``from_env()`` raises ``ConfigValidationError``
if any numeric value is out of its valid range, so bad configuration is
caught at startup rather than on the first request.

An empty ``REDIS_URL`` is valid: the pipeline then runs without a cache.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from historic_borders.core.cache import CacheConfig
from historic_borders.core.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_CONNECT_WAIT_S,
    DEFAULT_EXACT_MAX_FEATURES,
    DEFAULT_EXACT_MAX_VERTICES,
    DEFAULT_LARGE_OP_TIMEOUT_S,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OP_TIMEOUT_S,
    DEFAULT_SAMPLE_CAP,
)
from historic_borders.core.exceptions import ValidationError


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Loaded once at function startup and threaded through the pipeline.

    Attributes:
        redis_url: Cache store URL; empty disables caching.
        cache_op_timeout_s: Default per-operation cache timeout.
        cache_large_op_timeout_s: Timeout for reads and writes of large payloads.
        cache_connect_wait_s: Bound on waiting for an in-flight connect.
        cache_max_retries: Reconnect retry cap per connection instance.
        cache_ttl_seconds: TTL for cached derived payloads.
        borders_base_url: Raw content host for boundary and places files.
        github_api_url: API host used to list available years.
        github_token: Optional token for the listing API.
        districts_url: URL of the large district GeoJSON file.
        upstream_timeout_s: Timeout for upstream HTTP reads.
        label_exact_max_vertices: Exact-label vertex threshold per part.
        label_exact_max_features: Exact-label feature-count threshold.
        label_sample_cap: Vertex cap for the sampled-centroid strategy.
    """

    redis_url: str = ""
    cache_op_timeout_s: float = DEFAULT_OP_TIMEOUT_S
    cache_large_op_timeout_s: float = DEFAULT_LARGE_OP_TIMEOUT_S
    cache_connect_wait_s: float = DEFAULT_CONNECT_WAIT_S
    cache_max_retries: int = DEFAULT_MAX_RETRIES
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    borders_base_url: str = "https://raw.githubusercontent.com"
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    districts_url: str = ""
    upstream_timeout_s: float = 60.0
    label_exact_max_vertices: int = DEFAULT_EXACT_MAX_VERTICES
    label_exact_max_features: int = DEFAULT_EXACT_MAX_FEATURES
    label_sample_cap: int = DEFAULT_SAMPLE_CAP

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``CACHE_OP_TIMEOUT_S=abc``).
        """
        config = cls(
            redis_url=os.getenv("REDIS_URL", ""),
            cache_op_timeout_s=float(os.getenv("CACHE_OP_TIMEOUT_S", "3")),
            cache_large_op_timeout_s=float(os.getenv("CACHE_LARGE_OP_TIMEOUT_S", "30")),
            cache_connect_wait_s=float(os.getenv("CACHE_CONNECT_WAIT_S", "5")),
            cache_max_retries=int(os.getenv("CACHE_MAX_RETRIES", "3")),
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "86400")),
            borders_base_url=os.getenv("BORDERS_BASE_URL", "https://raw.githubusercontent.com"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            districts_url=os.getenv("DISTRICTS_URL", ""),
            upstream_timeout_s=float(os.getenv("UPSTREAM_TIMEOUT_S", "60")),
            label_exact_max_vertices=int(os.getenv("LABEL_EXACT_MAX_VERTICES", "5000")),
            label_exact_max_features=int(os.getenv("LABEL_EXACT_MAX_FEATURES", "1000")),
            label_sample_cap=int(os.getenv("LABEL_SAMPLE_CAP", "500")),
        )
        _validate(config)
        return config

    def cache_config(self) -> CacheConfig:
        """Return the ``CacheConfig`` for ``ResilientCache``."""
        return CacheConfig(
            url=self.redis_url,
            op_timeout_s=self.cache_op_timeout_s,
            connect_wait_s=self.cache_connect_wait_s,
            max_retries=self.cache_max_retries,
        )


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    for key, value in (
        ("CACHE_OP_TIMEOUT_S", config.cache_op_timeout_s),
        ("CACHE_LARGE_OP_TIMEOUT_S", config.cache_large_op_timeout_s),
        ("CACHE_CONNECT_WAIT_S", config.cache_connect_wait_s),
        ("UPSTREAM_TIMEOUT_S", config.upstream_timeout_s),
    ):
        if value <= 0:
            raise ConfigValidationError(key, value, "must be > 0 (seconds)")

    if config.cache_large_op_timeout_s < config.cache_op_timeout_s:
        raise ConfigValidationError(
            "CACHE_LARGE_OP_TIMEOUT_S",
            config.cache_large_op_timeout_s,
            "must be >= CACHE_OP_TIMEOUT_S",
        )

    if config.cache_max_retries < 0:
        raise ConfigValidationError(
            "CACHE_MAX_RETRIES",
            config.cache_max_retries,
            "must be >= 0",
        )

    if config.cache_ttl_seconds <= 0:
        raise ConfigValidationError(
            "CACHE_TTL_SECONDS",
            config.cache_ttl_seconds,
            "must be > 0 (seconds)",
        )

    if config.label_exact_max_vertices < 4:
        raise ConfigValidationError(
            "LABEL_EXACT_MAX_VERTICES",
            config.label_exact_max_vertices,
            "must be >= 4 (a closed triangle)",
        )

    if config.label_exact_max_features < 1:
        raise ConfigValidationError(
            "LABEL_EXACT_MAX_FEATURES",
            config.label_exact_max_features,
            "must be >= 1",
        )

    if config.label_sample_cap < 1:
        raise ConfigValidationError(
            "LABEL_SAMPLE_CAP",
            config.label_sample_cap,
            "must be >= 1",
        )

    if not config.borders_base_url:
        raise ConfigValidationError(
            "BORDERS_BASE_URL",
            config.borders_base_url,
            "must not be empty",
        )
