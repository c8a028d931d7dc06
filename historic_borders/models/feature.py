"""Data models for decomposed boundary parts and label points.

A ``DecomposedPart`` is one polygon ring-set (outer ring plus holes)
split out of a source boundary feature.  A ``LabelPoint`` is the anchor
chosen for an entity.  Both are immutable; the GeoJSON dicts they emit
are freshly built so the source feature is never mutated.

Property bags stay plain ordered ``dict[str, Any]``: only the reserved
keys ``NAME``, ``COLOR`` and ``AREA`` are written by the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from historic_borders.core.constants import AREA_KEY, COLOR_KEY, NAME_KEY

Ring = list[list[float]]
Properties = dict[str, Any]


def with_reserved(
    properties: Properties,
    *,
    name: str,
    color: str,
    area: float | None = None,
) -> Properties:
    """Return a copy of *properties* with the reserved keys injected."""
    merged = dict(properties)
    merged[NAME_KEY] = name
    merged[COLOR_KEY] = color
    if area is not None:
        merged[AREA_KEY] = area
    return merged


@dataclass(frozen=True, slots=True)
class DecomposedPart:
    """A single polygon ring-set derived from a boundary feature.

    Attributes:
        rings: ``[outer_ring, *holes]``; each ring is a list of ``[lon, lat]``.
        properties: Properties inherited from the source feature (a copy).
        area: Absolute outer-ring area in square metres (``0.0`` if it
            could not be computed).
        name: Entity name resolved from the dataset profile.
        color: Hex color assigned to the entity.
        entity_index: Index of the source feature in its collection.
        part_index: Index of this part within its source feature.
    """

    rings: list[Ring]
    properties: Properties = field(default_factory=dict)
    area: float = 0.0
    name: str = ""
    color: str = ""
    entity_index: int = 0
    part_index: int = 0

    @property
    def outer_ring(self) -> Ring:
        return self.rings[0] if self.rings else []

    @property
    def vertex_count(self) -> int:
        """Number of vertices in the outer ring."""
        return len(self.outer_ring)

    def to_feature(self) -> dict[str, Any]:
        """Emit a GeoJSON Polygon feature with ``NAME``/``COLOR`` injected."""
        return {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": self.rings},
            "properties": with_reserved(self.properties, name=self.name, color=self.color),
        }


@dataclass(frozen=True, slots=True)
class LabelPoint:
    """An entity label anchor.

    Attributes:
        coordinates: ``(lon, lat)`` anchor.
        properties: Label properties, reserved keys already injected.
        area: Area of the part hosting the label.
        part_index: Index of the hosting part within its entity.
    """

    coordinates: tuple[float, float]
    properties: Properties = field(default_factory=dict)
    area: float = 0.0
    part_index: int = 0

    def to_feature(self) -> dict[str, Any]:
        """Emit a GeoJSON Point feature."""
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": list(self.coordinates)},
            "properties": dict(self.properties),
        }


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    """Wrap *features* in a GeoJSON FeatureCollection."""
    return {"type": "FeatureCollection", "features": features}
