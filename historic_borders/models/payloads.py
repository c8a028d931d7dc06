"""Typed wire contracts for the HTTP layer and upstream payloads.

Outgoing shapes are ``TypedDict`` definitions so key mismatches are
caught statically.  Incoming upstream payloads are validated at ingress
with a small pydantic envelope; feature bodies stay untyped dicts
because their property bags are dataset-specific.
"""

from __future__ import annotations

from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from historic_borders.core.exceptions import ContractError

# ---------------------------------------------------------------------------
# Outgoing
# ---------------------------------------------------------------------------


class FeatureCollectionDict(TypedDict):
    """GeoJSON FeatureCollection."""

    type: str
    features: list[dict[str, Any]]


class BordersData(TypedDict):
    """The two aligned map layers produced by the pipeline."""

    borders: FeatureCollectionDict
    labels: FeatureCollectionDict


class BordersResponse(TypedDict):
    """``GET /api/borders/{owner}/{dataset}/{year}`` response body."""

    data: BordersData
    places: FeatureCollectionDict


DistrictsResponse = BordersData
"""``GET /api/pa-school-districts`` response body."""


class YearsResponse(TypedDict):
    """``GET /api/borders/{owner}/{dataset}`` response body."""

    years: list[int]
    tokens: list[str]


class DescriptionResponse(TypedDict):
    """``GET /api/describe`` response body."""

    name: str
    year: str
    content: str | None


# ---------------------------------------------------------------------------
# Incoming
# ---------------------------------------------------------------------------


class FeatureCollectionEnvelope(BaseModel):
    """Minimal structural check on an upstream FeatureCollection."""

    model_config = ConfigDict(extra="allow")

    type: Literal["FeatureCollection"]
    features: list[Any] = Field(default_factory=list)


def parse_feature_collection(raw: object, *, source: str) -> dict[str, Any]:
    """Validate *raw* as a FeatureCollection and return it as a plain dict.

    Args:
        raw: Decoded JSON from an upstream.
        source: Upstream identifier used in the error message.

    Raises:
        ContractError: If *raw* is not a FeatureCollection.
    """
    try:
        envelope = FeatureCollectionEnvelope.model_validate(raw)
    except PydanticValidationError as exc:
        msg = f"Upstream payload from {source} is not a FeatureCollection: {exc.error_count()} error(s)"
        raise ContractError(msg, stage="ingress", code="INVALID_FEATURE_COLLECTION") from exc
    return envelope.model_dump()
