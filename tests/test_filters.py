"""Tests for geodata.filters — building and street attribute filters."""

import pytest

from geodata.filters import (
    filter_buildings, filter_collection, filter_report, filter_streets, split_types,
)
from geodata.models import Building, OSMDataCollection, Street


@pytest.fixture
def collection():
    buildings = [
        Building("1", height=5.0, building_type="house"),
        Building("2", height=30.0, levels=10, building_type="apartments"),
        Building("3", levels=4, building_type="retail"),
        Building("4", building_type=None),
    ]
    streets = [
        Street("10", type="primary"),
        Street("11", type="residential"),
        Street("12", type="service"),
        Street("13", type=None),
    ]
    return OSMDataCollection(buildings=buildings, streets=streets,
                             origin_lat=40.0, origin_lon=-75.0)


class TestSplitTypes:

    @pytest.mark.unit
    def test_separators(self):
        assert split_types("House, apartments;retail") == ["house", "apartments", "retail"]

    @pytest.mark.unit
    @pytest.mark.parametrize("text", [None, "", "   ", ",;"])
    def test_empty(self, text):
        assert split_types(text) == []


class TestFilterBuildings:

    @pytest.mark.unit
    def test_no_criteria_keeps_everything(self, collection):
        assert len(filter_buildings(collection.buildings)) == 4

    @pytest.mark.unit
    def test_type_substring(self, collection):
        ids = [b.id for b in filter_buildings(collection.buildings, "apart, retail")]
        assert ids == ["2", "3"]

    @pytest.mark.unit
    def test_untyped_counts_as_yes(self, collection):
        ids = [b.id for b in filter_buildings(collection.buildings, "yes")]
        assert ids == ["4"]

    @pytest.mark.unit
    def test_height_range(self, collection):
        ids = [b.id for b in filter_buildings(collection.buildings, min_height=6.0,
                                              max_height=20.0)]
        assert "1" not in ids
        assert "2" not in ids

    @pytest.mark.unit
    def test_zero_max_height_is_unbounded(self, collection):
        ids = [b.id for b in filter_buildings(collection.buildings, min_height=20.0)]
        assert ids == ["2"]

    @pytest.mark.unit
    def test_min_levels_excludes_unknown(self, collection):
        ids = [b.id for b in filter_buildings(collection.buildings, min_levels=4)]
        assert ids == ["2", "3"]


class TestFilterStreets:

    @pytest.mark.unit
    def test_major_only(self, collection):
        assert [s.id for s in filter_streets(collection.streets, major_only=True)] == ["10"]

    @pytest.mark.unit
    def test_residential_only(self, collection):
        assert [s.id for s in filter_streets(collection.streets, residential_only=True)] == ["11"]

    @pytest.mark.unit
    def test_untyped_counts_as_unknown(self, collection):
        assert [s.id for s in filter_streets(collection.streets, "unknown")] == ["13"]


class TestFilterCollection:

    @pytest.mark.unit
    def test_keeps_metadata(self, collection):
        result = filter_collection(collection, building_types="house", major_only=True)
        assert len(result.buildings) == 1
        assert len(result.streets) == 1
        assert (result.origin_lat, result.origin_lon) == (40.0, -75.0)
        assert result.download_time == collection.download_time
        assert len(collection.buildings) == 4

    @pytest.mark.unit
    def test_report(self, collection):
        result = filter_collection(collection, building_types="house", street_types="primary")
        report = filter_report(collection, result, building_types="house",
                               street_types="primary")
        assert report.startswith("Filter Results:")
        assert "  Input: 4" in report
        assert "  Output: 1" in report
        assert "  Removed: 3" in report
        assert "  Type filter: house" in report
        assert "  Type filter: primary" in report
        assert "Major roads only" not in report
