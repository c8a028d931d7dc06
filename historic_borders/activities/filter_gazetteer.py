"""Temporal gazetteer filter activity.

Keeps the place points inhabited in the requested year.  A place is
included iff ``inhabitedSince`` is present and either ``inhabitedUntil``
is absent and ``year >= since``, or ``since <= year <= until``.  Places
with no ``inhabitedSince`` are always excluded, including those that only
carry ``inhabitedUntil``.
"""

from __future__ import annotations

import logging
from typing import Any

from historic_borders.models.feature import feature_collection
from historic_borders.models.gazetteer import GazetteerPoint
from historic_borders.utils.years import parse_year

logger = logging.getLogger("historic_borders.activities.filter_gazetteer")


def is_inhabited(properties: dict[str, Any] | None, year: int | float) -> bool:
    """Whether a place with *properties* is inhabited in *year*."""
    return GazetteerPoint.from_properties(properties).includes(year)


def filter_places(
    collection: dict[str, Any] | None,
    year: int | str,
) -> dict[str, Any]:
    """Return a new FeatureCollection of the places inhabited in *year*.

    Args:
        collection: Gazetteer FeatureCollection (``None`` → empty result).
        year: Integer year or year token (``"bc500"``).

    Raises:
        YearFormatError: If *year* is an unparseable token.
    """
    year_number = parse_year(year)
    features = (collection or {}).get("features") or []
    kept = [
        f
        for f in features
        if isinstance(f, dict) and is_inhabited(f.get("properties"), year_number)
    ]
    logger.debug("Gazetteer filtered | year=%d | kept=%d/%d", year_number, len(kept), len(features))
    return feature_collection(kept)
