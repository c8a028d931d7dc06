"""Shared pytest fixtures for the Historic Borders test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from historic_borders.core.cache import CacheConfig, ResilientCache
from tests.fakes import FakeRedis

# ---------------------------------------------------------------------------
# Path fixtures
# ---------------------------------------------------------------------------

TESTS_DIR = Path(__file__).parent
DATA_DIR = TESTS_DIR / "data"


@pytest.fixture()
def data_dir() -> Path:
    """Return the path to the test data directory."""
    return DATA_DIR


def load_geojson(name: str) -> dict[str, Any]:
    return json.loads((DATA_DIR / name).read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Sample GeoJSON fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def world_1500() -> dict[str, Any]:
    """Boundaries for 1500: an exclave empire, its colony, a holed kingdom,
    two excluded sentinels, a nameless feature and a non-polygon feature."""
    return load_geojson("world_1500.geojson")


@pytest.fixture()
def places() -> dict[str, Any]:
    """Gazetteer with habitation windows around the year 1500."""
    return load_geojson("places.geojson")


@pytest.fixture()
def districts_sample() -> dict[str, Any]:
    """Two school districts, one of them a MultiPolygon."""
    return load_geojson("pa_school_districts_sample.geojson")


@pytest.fixture()
def districts_bytes() -> bytes:
    return (DATA_DIR / "pa_school_districts_sample.geojson").read_bytes()


# ---------------------------------------------------------------------------
# Cache fakes
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache_config() -> CacheConfig:
    return CacheConfig(url="redis://cache.test:6379/0", op_timeout_s=0.5, connect_wait_s=0.5)


@pytest.fixture()
def fake_cache(cache_config: CacheConfig, fake_redis: FakeRedis) -> ResilientCache:
    """A ``ResilientCache`` backed by the in-memory ``FakeRedis``."""
    return ResilientCache(cache_config, client_factory=lambda _cfg: fake_redis)


@pytest.fixture()
def disabled_cache() -> ResilientCache:
    return ResilientCache(CacheConfig())
