"""Request-scoped boundary pipeline orchestrator.

Per request:

1. Fetch the raw boundary collection (and, for the historic dataset, the
   places gazetteer) from the dataset source.
2. Decompose → color → place labels, entity by entity.  Entities are
   independent, so the per-entity work may be mapped over an executor.
3. Assemble the aligned ``borders`` and ``labels`` FeatureCollections.
4. Filter the gazetteer to the requested year.

The orchestrator keeps no state between requests.  Datasets whose
profile sets ``cache_ttl_seconds`` are cached under
``(dataset identity, year)``; the whole computation is a pure function of
``(raw input, year)`` so a cache hit is indistinguishable from a
recomputation.  Cache writes run in the background.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from functools import partial
from typing import TYPE_CHECKING, Any

from historic_borders.activities.decompose import decompose_feature
from historic_borders.activities.filter_gazetteer import filter_places
from historic_borders.activities.place_labels import (
    LabelSettings,
    PlacementContext,
    place_entity_label,
)
from historic_borders.core.cache import CacheConfig, ResilientCache
from historic_borders.core.config import ConfigValidationError, PipelineConfig
from historic_borders.core.constants import cache_key
from historic_borders.core.exceptions import ContractError
from historic_borders.core.streaming import StreamingCacheProxy
from historic_borders.models.feature import feature_collection
from historic_borders.models.payloads import parse_feature_collection
from historic_borders.models.profile import (
    HISTORIC_BORDERS,
    PA_SCHOOL_DISTRICTS,
    DatasetProfile,
)
from historic_borders.utils.years import format_year, parse_year

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from concurrent.futures import Executor

    from historic_borders.models.payloads import BordersData, BordersResponse, DistrictsResponse
    from historic_borders.providers.base import DatasetSource

logger = logging.getLogger("historic_borders.orchestrators.borders_pipeline")


# ---------------------------------------------------------------------------
# Pure processing
# ---------------------------------------------------------------------------


def process_entity(
    feature: dict[str, Any],
    entity_index: int,
    *,
    profile: DatasetProfile,
    ctx: PlacementContext,
) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
    """Process one entity into its border parts and canonical label."""
    parts = decompose_feature(feature, profile, entity_index=entity_index)
    label = place_entity_label(parts, profile, ctx)
    return [p.to_feature() for p in parts], (label.to_feature() if label else None)


def process_boundaries(
    collection: dict[str, Any],
    profile: DatasetProfile = HISTORIC_BORDERS,
    *,
    settings: LabelSettings | None = None,
    executor: Executor | None = None,
) -> BordersData:
    """Turn a raw boundary FeatureCollection into ``borders`` + ``labels``.

    Args:
        collection: Raw GeoJSON FeatureCollection (not mutated).
        profile: Dataset interpretation rules.
        settings: Label strategy thresholds.
        executor: Optional executor to map entities over; results keep
            input order either way.

    Returns:
        ``{"borders": FeatureCollection, "labels": FeatureCollection}``
        with one border feature per polygon part and one label per entity.
    """
    features = [f for f in collection.get("features") or [] if isinstance(f, dict)]
    ctx = PlacementContext(
        mode=profile.label_mode,
        feature_count=len(features),
        settings=settings or LabelSettings(),
    )
    worker = partial(process_entity, profile=profile, ctx=ctx)
    mapper = executor.map if executor is not None else map

    borders: list[dict[str, Any]] = []
    labels: list[dict[str, Any]] = []
    for parts, label in mapper(worker, features, range(len(features))):
        borders.extend(parts)
        if label is not None:
            labels.append(label)

    logger.info(
        "Boundaries processed | dataset=%s | features=%d | entities=%d | parts=%d",
        profile.dataset_id,
        len(features),
        len(labels),
        len(borders),
    )
    return {"borders": feature_collection(borders), "labels": feature_collection(labels)}


def is_borders_data(value: object) -> bool:
    """Whether a cached value has the ``BordersData`` shape."""
    return (
        isinstance(value, dict)
        and isinstance(value.get("borders"), dict)
        and isinstance(value.get("labels"), dict)
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BordersPipeline:
    """Compose the dataset source, processing activities and cache.

    Args:
        source: Where raw boundary and gazetteer collections come from.
        config: Pipeline configuration.
        cache: Resilient cache; a disabled cache is used when ``None``.
        proxy: Streaming proxy for the large district file.
        executor: Optional executor for per-entity processing.
    """

    def __init__(
        self,
        source: DatasetSource,
        *,
        config: PipelineConfig | None = None,
        cache: ResilientCache | None = None,
        proxy: StreamingCacheProxy | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._source = source
        self._config = config or PipelineConfig()
        self._cache = cache or ResilientCache(CacheConfig())
        self._proxy = proxy or StreamingCacheProxy(
            self._cache, upstream_timeout_s=self._config.upstream_timeout_s
        )
        self._executor = executor
        self._settings = LabelSettings.from_config(self._config)
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def cache(self) -> ResilientCache:
        return self._cache

    @property
    def proxy(self) -> StreamingCacheProxy:
        return self._proxy

    # ------------------------------------------------------------------
    # Historic borders
    # ------------------------------------------------------------------

    async def borders_for_year(
        self,
        owner: str,
        dataset: str,
        year_token: str,
        *,
        profile: DatasetProfile = HISTORIC_BORDERS,
    ) -> BordersResponse:
        """Return the processed borders, labels and places for one year.

        Raises:
            YearFormatError: If *year_token* is not a year.
            UpstreamFetchError: If boundaries or places cannot be fetched.
            ContractError: If an upstream payload is not a FeatureCollection.
        """
        year = parse_year(year_token)
        token = format_year(year)
        started = time.perf_counter()

        async def _load() -> BordersData:
            boundaries = await self._source.fetch_boundaries(owner, dataset, token)
            return await self._process(boundaries, profile)

        data, places = await asyncio.gather(
            self._processed(profile, cache_key(profile.dataset_id, owner, dataset, token), _load),
            self._source.fetch_places(owner, dataset),
        )

        logger.info(
            "Borders request complete | owner=%s | dataset=%s | year=%s | duration=%.2fs",
            owner,
            dataset,
            token,
            time.perf_counter() - started,
        )
        return {"data": data, "places": filter_places(places, year)}

    async def available_years(self, owner: str, dataset: str) -> list[int]:
        """Return the years with a boundary file for ``owner/dataset``."""
        return await self._source.list_years(owner, dataset)

    # ------------------------------------------------------------------
    # Large district dataset
    # ------------------------------------------------------------------

    def districts_raw_key(self, profile: DatasetProfile = PA_SCHOOL_DISTRICTS) -> str:
        return cache_key(profile.dataset_id, profile.edition, "raw")

    def districts_url(self) -> str:
        """Return the configured district file URL.

        Raises:
            ConfigValidationError: If ``DISTRICTS_URL`` is not set.
        """
        if not self._config.districts_url:
            raise ConfigValidationError(
                "DISTRICTS_URL", "", "must be set to serve the district dataset"
            )
        return self._config.districts_url

    async def districts(self, *, profile: DatasetProfile = PA_SCHOOL_DISTRICTS) -> DistrictsResponse:
        """Return processed district borders and labels, cached per edition.

        Raises:
            ConfigValidationError: If no district file is configured.
            UpstreamFetchError: If the district file cannot be fetched.
            ContractError: If the file is not a GeoJSON FeatureCollection.
        """
        url = self.districts_url()

        async def _load() -> BordersData:
            raw = await self._proxy.fetch(
                self.districts_raw_key(profile),
                url,
                ttl_seconds=profile.cache_ttl_seconds or self._config.cache_ttl_seconds,
                write_timeout=self._config.cache_large_op_timeout_s,
                read_timeout=self._config.cache_large_op_timeout_s,
            )
            try:
                decoded = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                msg = f"District file at {url} is not valid JSON: {exc}"
                raise ContractError(msg, stage="districts", code="INVALID_JSON") from exc
            collection = parse_feature_collection(decoded, source=url)
            return await self._process(collection, profile)

        return await self._processed(
            profile,
            cache_key(profile.dataset_id, profile.edition),
            _load,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for background cache writes (pipeline and proxy)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self._proxy.drain()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _process(self, collection: dict[str, Any], profile: DatasetProfile) -> BordersData:
        return await asyncio.to_thread(
            process_boundaries,
            collection,
            profile,
            settings=self._settings,
            executor=self._executor,
        )

    async def _processed(
        self,
        profile: DatasetProfile,
        key: str,
        compute: Callable[[], Awaitable[BordersData]],
    ) -> BordersData:
        if profile.cache_ttl_seconds is None:
            return await compute()

        cached = await self._cache.get(key, timeout=self._config.cache_large_op_timeout_s)
        if is_borders_data(cached):
            logger.info("Processed dataset cache hit | key=%s", key)
            return cached  # type: ignore[return-value]

        data = await compute()
        task = asyncio.create_task(
            self._cache.set(
                key,
                data,
                ttl_seconds=profile.cache_ttl_seconds,
                timeout=self._config.cache_large_op_timeout_s,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return data
