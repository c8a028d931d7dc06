"""Label placement activity.

Computes a label anchor for polygon parts and picks the canonical label
of each entity (the part with the largest area; first part on ties).

Anchor strategies are an explicit ordered list; the first strategy that
applies to a part and yields a point wins:

1. ``pole_of_inaccessibility``: ``shapely.ops.polylabel`` with a
   tolerance relative to the polygon extent.  Applies to parts within the
   exact-mode vertex and dataset-size thresholds (or when forced).
2. ``sampled_centroid``: unweighted mean of an evenly strided sample of
   outer-ring vertices, capped at ``sample_cap`` points.  Always applies,
   bounded CPU cost regardless of ring size.

Degenerate rings (empty, or fewer than three distinct vertices) get the
``(0, 0)`` fallback anchor instead of failing the pipeline.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeVar

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.ops import polylabel

from historic_borders.core.constants import (
    AREA_KEY,
    COLOR_KEY,
    DEFAULT_EXACT_MAX_FEATURES,
    DEFAULT_EXACT_MAX_VERTICES,
    DEFAULT_SAMPLE_CAP,
    FALLBACK_ANCHOR,
    LABEL_PRECISION_RATIO,
    MIN_LABEL_PRECISION,
    NAME_KEY,
)
from historic_borders.models.feature import DecomposedPart, LabelPoint, Ring, with_reserved
from historic_borders.models.profile import LabelMode

if TYPE_CHECKING:
    from historic_borders.core.config import PipelineConfig
    from historic_borders.models.profile import DatasetProfile

logger = logging.getLogger("historic_borders.activities.place_labels")

MIN_DISTINCT_VERTICES = 3


@dataclass(frozen=True, slots=True)
class LabelSettings:
    """Thresholds that steer strategy selection.

    Attributes:
        exact_max_vertices: Largest outer ring labelled exactly.
        exact_max_features: Largest dataset labelled exactly.
        sample_cap: Maximum vertices averaged by the sampled centroid.
    """

    exact_max_vertices: int = DEFAULT_EXACT_MAX_VERTICES
    exact_max_features: int = DEFAULT_EXACT_MAX_FEATURES
    sample_cap: int = DEFAULT_SAMPLE_CAP

    @classmethod
    def from_config(cls, config: PipelineConfig) -> LabelSettings:
        return cls(
            exact_max_vertices=config.label_exact_max_vertices,
            exact_max_features=config.label_exact_max_features,
            sample_cap=config.label_sample_cap,
        )


@dataclass(frozen=True, slots=True)
class PlacementContext:
    """Per-dataset inputs to strategy selection."""

    mode: LabelMode = LabelMode.AUTO
    feature_count: int = 0
    settings: LabelSettings = LabelSettings()


@dataclass(frozen=True, slots=True)
class AnchorStrategy:
    """A named anchor strategy and the rule deciding when it applies."""

    name: str
    applies: Callable[[DecomposedPart, PlacementContext], bool]
    compute: Callable[[list[Ring], PlacementContext], tuple[float, float] | None]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def pole_of_inaccessibility(rings: list[Ring]) -> tuple[float, float] | None:
    """Return the polylabel anchor of a polygon, or ``None`` if GEOS rejects it."""
    shell = _xy(rings[0])
    holes = [h for h in (_xy(r) for r in rings[1:]) if len(h) >= MIN_DISTINCT_VERTICES + 1]
    try:
        polygon = Polygon(shell, holes=holes or None)
        if polygon.is_empty:
            return None
        min_x, min_y, max_x, max_y = polygon.bounds
        extent = max(max_x - min_x, max_y - min_y)
        point = polylabel(polygon, tolerance=max(extent * LABEL_PRECISION_RATIO, MIN_LABEL_PRECISION))
    except (GEOSException, ValueError) as exc:
        logger.debug("Polylabel failed | error=%s", exc)
        return None
    if point.is_empty or not (math.isfinite(point.x) and math.isfinite(point.y)):
        return None
    return (point.x, point.y)


def sampled_centroid(ring: Ring, sample_cap: int = DEFAULT_SAMPLE_CAP) -> tuple[float, float] | None:
    """Mean of an evenly strided sample of at most *sample_cap* ring vertices.

    The closing vertex of a closed ring is not counted twice.
    """
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    length = len(ring)
    if length == 0:
        return None
    stride = math.ceil(length / sample_cap) if length > sample_cap else 1
    sample = _xy(ring[::stride])
    if not sample:
        return None
    lon, lat = np.asarray(sample, dtype=float).mean(axis=0)
    return (float(lon), float(lat))


def _exact_applies(part: DecomposedPart, ctx: PlacementContext) -> bool:
    if ctx.mode is LabelMode.EXACT:
        return True
    if ctx.mode is LabelMode.APPROXIMATE:
        return False
    return (
        part.vertex_count <= ctx.settings.exact_max_vertices
        and ctx.feature_count <= ctx.settings.exact_max_features
    )


STRATEGIES: tuple[AnchorStrategy, ...] = (
    AnchorStrategy(
        name="pole_of_inaccessibility",
        applies=_exact_applies,
        compute=lambda rings, _ctx: pole_of_inaccessibility(rings),
    ),
    AnchorStrategy(
        name="sampled_centroid",
        applies=lambda _part, _ctx: True,
        compute=lambda rings, ctx: sampled_centroid(rings[0], ctx.settings.sample_cap),
    ),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def anchor_for(
    part: DecomposedPart,
    ctx: PlacementContext | None = None,
    *,
    strategies: Sequence[AnchorStrategy] = STRATEGIES,
) -> tuple[float, float]:
    """Return the label anchor for one polygon part."""
    ctx = ctx or PlacementContext()
    if is_degenerate(part.outer_ring):
        return FALLBACK_ANCHOR

    for strategy in strategies:
        if not strategy.applies(part, ctx):
            continue
        anchor = strategy.compute(part.rings, ctx)
        if anchor is not None:
            return anchor
        logger.debug(
            "Anchor strategy yielded nothing, trying next | strategy=%s | entity=%s | part=%d",
            strategy.name,
            part.name,
            part.part_index,
        )
    return FALLBACK_ANCHOR


class _HasArea(Protocol):
    @property
    def area(self) -> float: ...


A = TypeVar("A", bound=_HasArea)


def select_canonical(candidates: Sequence[A]) -> A | None:
    """Return the candidate with the largest area; the first one on ties."""
    best: A | None = None
    for candidate in candidates:
        if best is None or candidate.area > best.area:
            best = candidate
    return best


def label_properties(part: DecomposedPart, profile: DatasetProfile) -> dict[str, object]:
    """Build label properties for *part* according to the profile."""
    if profile.label_fields is None:
        return with_reserved(part.properties, name=part.name, color=part.color, area=part.area)
    properties: dict[str, object] = {
        NAME_KEY: part.name,
        COLOR_KEY: part.color,
        AREA_KEY: part.area,
    }
    for key in profile.label_fields:
        value = part.properties.get(key)
        properties[key] = value if value not in ("", None) else None
    return properties


def place_entity_label(
    parts: Sequence[DecomposedPart],
    profile: DatasetProfile,
    ctx: PlacementContext | None = None,
) -> LabelPoint | None:
    """Return the canonical label of one entity, or ``None`` if it has no parts.

    Only the canonical part is anchored: the other parts' anchors would be
    discarded from the label layer anyway.
    """
    canonical = select_canonical(parts)
    if canonical is None:
        return None
    return LabelPoint(
        coordinates=anchor_for(canonical, ctx),
        properties=label_properties(canonical, profile),
        area=canonical.area,
        part_index=canonical.part_index,
    )


def is_degenerate(ring: Ring) -> bool:
    """Whether *ring* has fewer than three distinct usable vertices."""
    distinct: set[tuple[float, float]] = set()
    for xy in _xy(ring):
        distinct.add(xy)
        if len(distinct) >= MIN_DISTINCT_VERTICES:
            return False
    return True


def _xy(ring: Ring) -> list[tuple[float, float]]:
    """Drop malformed vertices and any Z/M ordinates."""
    points: list[tuple[float, float]] = []
    for vertex in ring:
        if not isinstance(vertex, (list, tuple)) or len(vertex) < 2:
            continue
        try:
            x, y = float(vertex[0]), float(vertex[1])
        except (TypeError, ValueError):
            continue
        if math.isfinite(x) and math.isfinite(y):
            points.append((x, y))
    return points
