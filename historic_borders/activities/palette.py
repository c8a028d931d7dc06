"""Deterministic palette assignment.

``color_for`` is a pure function of its key: a 31-multiplier rolling hash
with signed 32-bit wraparound, computed over UTF-16 code units, indexes
into the fixed atlas palette.  No state, no I/O, no seeding, so the same
key maps to the same color in every process.  Collisions between keys
are expected; the palette size bounds on-screen ambiguity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from historic_borders.core.constants import PALETTE

if TYPE_CHECKING:
    from historic_borders.models.profile import DatasetProfile

_UINT32 = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def string_hash(key: str) -> int:
    """Return the signed 32-bit rolling hash of *key*.

    Iterates UTF-16 code units so astral characters hash as surrogate
    pairs.
    """
    h = 0
    data = key.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (31 * h + unit) & _UINT32
    return h - (1 << 32) if h & _INT32_SIGN else h


def color_for(key: str) -> str:
    """Return the palette color for *key*.  The empty string is a valid key."""
    return PALETTE[abs(string_hash(key)) % len(PALETTE)]


def color_key(properties: dict[str, Any], profile: DatasetProfile, name: str) -> str:
    """Return the key an entity is colored by.

    The profile's owner-override property wins when set, so dependent
    territories share their parent's color; otherwise the entity name.
    """
    if profile.color_key:
        owner = properties.get(profile.color_key)
        if owner is not None and owner != "":
            return str(owner)
    return name
