"""Dataset profiles: how a particular boundary dataset is interpreted.

A profile names the property that holds the entity name, the optional
owner override used for coloring, the sentinel names to drop, which
fields are copied onto labels, and whether label placement is forced
into a particular mode.  The pipeline itself is dataset-agnostic.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from historic_borders.core.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    EXCLUDED_ENTITY_NAMES,
    NAME_KEY,
    SUBJECT_KEY,
)


class LabelMode(enum.Enum):
    """Label placement mode.

    Values:
        AUTO:        Pick per part from vertex count and dataset size.
        EXACT:       Always use the pole of inaccessibility.
        APPROXIMATE: Always use the sampled vertex centroid.
    """

    AUTO = "auto"
    EXACT = "exact"
    APPROXIMATE = "approximate"


@dataclass(frozen=True, slots=True)
class DatasetProfile:
    """Interpretation rules for one boundary dataset.

    Attributes:
        dataset_id: Stable identity used in cache keys and logs.
        name_key: Property holding the entity name.
        color_key: Optional owner-override property used for coloring.
        excluded_names: Entity names dropped before decomposition.
        label_fields: Properties copied onto labels; ``None`` copies all.
        label_mode: Forced label placement mode, or ``AUTO``.
        cache_ttl_seconds: TTL for cached processed output; ``None``
            disables caching for the dataset.
        edition: Dataset edition (e.g. ``"2025_10"``) used in cache keys.
    """

    dataset_id: str
    name_key: str = NAME_KEY
    color_key: str | None = SUBJECT_KEY
    excluded_names: frozenset[str] = EXCLUDED_ENTITY_NAMES
    label_fields: tuple[str, ...] | None = None
    label_mode: LabelMode = LabelMode.AUTO
    cache_ttl_seconds: int | None = None
    edition: str = ""


HISTORIC_BORDERS = DatasetProfile(dataset_id="historic-borders")

PA_SCHOOL_DISTRICTS = DatasetProfile(
    dataset_id="pa-school-districts",
    name_key="SCHOOL_NAM",
    color_key=None,
    excluded_names=frozenset(),
    label_fields=(
        "SCHOOL_NAM",
        "SCHOOL_DIS",
        "CTY_NAME",
        "IU_NAME",
        "IU_NUM",
        "AUN_NUM",
        "AVTS",
    ),
    label_mode=LabelMode.APPROXIMATE,
    cache_ttl_seconds=DEFAULT_CACHE_TTL_SECONDS,
    edition="2025_10",
)
