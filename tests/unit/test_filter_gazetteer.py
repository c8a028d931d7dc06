"""Tests for the temporal gazetteer filter.

Covers:
- Inclusive boundaries at ``inhabitedSince`` and ``inhabitedUntil``
- Places without ``inhabitedSince`` are always excluded
- Year tokens, BCE years and malformed property values
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from historic_borders.activities.filter_gazetteer import filter_places, is_inhabited
from historic_borders.core.exceptions import YearFormatError
from historic_borders.models.gazetteer import GazetteerPoint


def _names(collection: dict[str, Any]) -> list[str]:
    return [f["properties"]["name"] for f in collection["features"]]


class TestIsInhabited:
    """Verify the habitation window rule."""

    @pytest.mark.parametrize(
        ("year", "expected"),
        [(1499, False), (1500, True), (1600, True), (1601, False)],
    )
    def test_bounded_window_is_inclusive(self, year: int, expected: bool) -> None:
        props = {"inhabitedSince": 1500, "inhabitedUntil": 1600}
        assert is_inhabited(props, year) is expected

    @pytest.mark.parametrize(("year", "expected"), [(1499, False), (1500, True), (2024, True)])
    def test_open_window(self, year: int, expected: bool) -> None:
        assert is_inhabited({"inhabitedSince": 1500}, year) is expected

    def test_until_only_is_excluded(self) -> None:
        assert is_inhabited({"inhabitedUntil": 1600}, 1000) is False

    def test_no_properties_is_excluded(self) -> None:
        assert is_inhabited(None, 1500) is False

    def test_since_zero_is_present(self) -> None:
        assert is_inhabited({"inhabitedSince": 0}, 1) is True

    def test_bce_years(self) -> None:
        assert is_inhabited({"inhabitedSince": -753, "inhabitedUntil": 476}, -500) is True

    @pytest.mark.parametrize("value", [None, "", "soon", True, float("nan")])
    def test_non_numeric_since_is_absent(self, value: object) -> None:
        assert is_inhabited({"inhabitedSince": value}, 1500) is False

    def test_numeric_string_is_accepted(self) -> None:
        assert GazetteerPoint.from_properties({"inhabitedSince": "1500"}).since == 1500.0


class TestFilterPlaces:
    """Verify collection filtering."""

    def test_year_1500(self, places: dict[str, Any]) -> None:
        assert _names(filter_places(places, 1500)) == ["Founded 1500", "Bounded"]

    def test_year_1499(self, places: dict[str, Any]) -> None:
        assert _names(filter_places(places, 1499)) == ["Bounded", "Ancient"]

    def test_year_token(self, places: dict[str, Any]) -> None:
        assert _names(filter_places(places, "bc500")) == ["Ancient"]

    def test_input_not_mutated(self, places: dict[str, Any]) -> None:
        snapshot = copy.deepcopy(places)
        result = filter_places(places, 1500)
        assert places == snapshot
        assert result is not places

    def test_none_collection(self) -> None:
        assert filter_places(None, 1500) == {"type": "FeatureCollection", "features": []}

    def test_bad_year_token(self, places: dict[str, Any]) -> None:
        with pytest.raises(YearFormatError):
            filter_places(places, "next year")
