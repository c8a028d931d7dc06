"""Data model for a gazetteer place point with a habitation window."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

SINCE_KEY = "inhabitedSince"
UNTIL_KEY = "inhabitedUntil"


@dataclass(frozen=True, slots=True)
class GazetteerPoint:
    """Habitation window of a place.  Years are numeric; negative = BCE.

    Attributes:
        since: First inhabited year, or ``None`` when unknown.
        until: Last inhabited year, or ``None`` when still inhabited.
    """

    since: float | None = None
    until: float | None = None

    @classmethod
    def from_properties(cls, properties: dict[str, Any] | None) -> GazetteerPoint:
        """Read the habitation window from a GeoJSON property bag.

        Missing, ``None`` or non-numeric values are treated as absent.
        """
        props = properties or {}
        return cls(since=_as_year(props.get(SINCE_KEY)), until=_as_year(props.get(UNTIL_KEY)))

    def includes(self, year: float) -> bool:
        """Whether the place is inhabited in *year*.

        A place without ``since`` is never included, even when ``until``
        is known.
        """
        if self.since is None:
            return False
        if self.until is None:
            return year >= self.since
        return self.since <= year <= self.until


def _as_year(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        year = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(year):
        return None
    return year
