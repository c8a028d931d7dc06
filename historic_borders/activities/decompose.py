"""Geometry decomposition activity.

Splits each Polygon / MultiPolygon boundary feature into independently
renderable single-polygon parts, each carrying a copy of the source
properties and the geodesic area of its outer ring.

Content filter: features without a name, or whose name is one of the
profile's excluded sentinels, are dropped before any geometry work.
Malformed geometry drops only the affected feature (or coordinate
group); the collection is never aborted.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from pyproj import Geod

from historic_borders.activities.palette import color_for, color_key
from historic_borders.models.feature import DecomposedPart, Ring

if TYPE_CHECKING:
    from historic_borders.models.profile import DatasetProfile

logger = logging.getLogger("historic_borders.activities.decompose")

# Minimum vertices for a ring that can enclose area (3 distinct + closure)
MIN_RING_VERTICES = 4

_GEOD = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def entity_name(feature: dict[str, Any], profile: DatasetProfile) -> str | None:
    """Return the entity name, or ``None`` if the feature is filtered out."""
    properties = feature.get("properties") or {}
    name = properties.get(profile.name_key)
    if name is None:
        return None
    name = str(name)
    if name in profile.excluded_names:
        return None
    return name


def decompose_feature(
    feature: dict[str, Any],
    profile: DatasetProfile,
    *,
    entity_index: int = 0,
) -> list[DecomposedPart]:
    """Decompose one GeoJSON feature into polygon parts.

    Args:
        feature: A GeoJSON feature with Polygon or MultiPolygon geometry.
        profile: Dataset interpretation rules.
        entity_index: Index of *feature* within its collection.

    Returns:
        One ``DecomposedPart`` per polygon ring-set, in source order.
        Empty when the feature is filtered out or its geometry is unusable.
    """
    name = entity_name(feature, profile)
    if name is None:
        return []

    geometry = feature.get("geometry")
    groups = _polygon_groups(geometry)
    if not groups:
        logger.warning(
            "Dropping feature with unusable geometry | entity=%s | index=%d | type=%s",
            name,
            entity_index,
            geometry.get("type") if isinstance(geometry, dict) else type(geometry).__name__,
        )
        return []

    properties = dict(feature.get("properties") or {})
    color = color_for(color_key(properties, profile, name))

    parts: list[DecomposedPart] = []
    for part_index, rings in enumerate(groups):
        if not _is_ring_set(rings):
            logger.warning(
                "Dropping malformed polygon group | entity=%s | part=%d",
                name,
                part_index,
            )
            continue
        parts.append(
            DecomposedPart(
                rings=rings,
                properties=dict(properties),
                area=ring_area(rings[0]),
                name=name,
                color=color,
                entity_index=entity_index,
                part_index=part_index,
            )
        )
    return parts


def decompose_collection(
    collection: dict[str, Any],
    profile: DatasetProfile,
) -> list[DecomposedPart]:
    """Decompose every feature of a FeatureCollection into polygon parts."""
    parts: list[DecomposedPart] = []
    for index, feature in enumerate(collection.get("features") or []):
        if isinstance(feature, dict):
            parts.extend(decompose_feature(feature, profile, entity_index=index))
    return parts


def ring_area(ring: Ring) -> float:
    """Absolute geodesic area of *ring* in square metres.

    Holes are ignored: the value only ranks parts of one entity.
    Returns ``0.0`` when the area cannot be computed.
    """
    if len(ring) < MIN_RING_VERTICES:
        return 0.0
    try:
        lons = [float(c[0]) for c in ring]
        lats = [float(c[1]) for c in ring]
        area_m2, _perimeter = _GEOD.polygon_area_perimeter(lons, lats)
    except (TypeError, ValueError, IndexError) as exc:
        logger.debug("Area computation failed | error=%s", exc)
        return 0.0
    if not math.isfinite(area_m2):
        return 0.0
    return abs(area_m2)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _polygon_groups(geometry: object) -> list[list[Ring]]:
    """Return the ring-sets of a Polygon/MultiPolygon, else ``[]``."""
    if not isinstance(geometry, dict):
        return []
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates:
        return []

    geometry_type = geometry.get("type")
    if geometry_type == "Polygon":
        return [coordinates]
    if geometry_type == "MultiPolygon":
        return [group for group in coordinates if isinstance(group, list) and group]
    return []


def _is_ring_set(rings: object) -> bool:
    if not isinstance(rings, list) or not rings:
        return False
    return all(isinstance(ring, list) for ring in rings)
