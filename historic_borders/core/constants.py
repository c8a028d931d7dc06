"""Shared pipeline constants.

Centralises reserved property keys, the color palette, label-placement
thresholds, and cache key namespaces used across activities, the
orchestrator, and the HTTP layer.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Reserved property keys (injected/overwritten by the pipeline)
# ---------------------------------------------------------------------------

NAME_KEY: str = "NAME"
"""Entity display name on both borders and labels."""

COLOR_KEY: str = "COLOR"
"""Hex color assigned by the palette."""

AREA_KEY: str = "AREA"
"""Outer-ring area of the canonical part, in square metres."""

SUBJECT_KEY: str = "SUBJECTO"
"""Owner override: dependent territories are colored like their parent."""

# ---------------------------------------------------------------------------
# Palette (high-contrast atlas colors)
# ---------------------------------------------------------------------------

PALETTE: tuple[str, ...] = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#FFA07A", "#98D8C8",
    "#F7DC6F", "#BB8FCE", "#85C1E9", "#F8C471", "#82E0AA",
    "#F1C40F", "#E74C3C", "#3498DB", "#2ECC71", "#9B59B6",
    "#E67E22", "#1ABC9C", "#34495E", "#F39C12", "#D35400",
    "#27AE60", "#2980B9", "#8E44AD", "#16A085", "#F4D03F",
    "#58D68D", "#5DADE2", "#AF7AC5", "#F8D7DA", "#D5DBDB",
)  # fmt: skip

# ---------------------------------------------------------------------------
# Content filter
# ---------------------------------------------------------------------------

EXCLUDED_ENTITY_NAMES: frozenset[str] = frozenset({"unclaimed", "Antarctica"})
"""Sentinel names dropped before decomposition in the historic dataset."""

# ---------------------------------------------------------------------------
# Label placement
# ---------------------------------------------------------------------------

DEFAULT_EXACT_MAX_VERTICES: int = 5_000
"""Outer rings larger than this use the sampled-centroid strategy."""

DEFAULT_EXACT_MAX_FEATURES: int = 1_000
"""Datasets with more features than this use the sampled-centroid strategy."""

DEFAULT_SAMPLE_CAP: int = 500
"""Maximum number of vertices averaged by the sampled-centroid strategy."""

LABEL_PRECISION_RATIO: float = 1e-3
"""Polylabel tolerance as a fraction of the polygon's larger extent."""

MIN_LABEL_PRECISION: float = 1e-9

FALLBACK_ANCHOR: tuple[float, float] = (0.0, 0.0)
"""Anchor returned for degenerate polygons."""

# ---------------------------------------------------------------------------
# Cache namespaces and lifetimes
# ---------------------------------------------------------------------------

CACHE_KEY_PREFIX: str = "historic-borders"
DEFAULT_CACHE_TTL_SECONDS: int = 24 * 60 * 60
DEFAULT_OP_TIMEOUT_S: float = 3.0
DEFAULT_LARGE_OP_TIMEOUT_S: float = 30.0
DEFAULT_CONNECT_WAIT_S: float = 5.0
DEFAULT_MAX_RETRIES: int = 3


def cache_key(*parts: object) -> str:
    """Build a namespaced cache key, e.g. ``historic-borders:districts:2025``."""
    return ":".join([CACHE_KEY_PREFIX, *(str(p) for p in parts)])
