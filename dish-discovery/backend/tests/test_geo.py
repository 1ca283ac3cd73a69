from __future__ import annotations

import math

import pytest

from models import LatLng
from services.geo import distance_miles, format_distance_label, normalize_coordinates


SF = LatLng(37.7749, -122.4194)
LA = LatLng(34.0522, -118.2437)


def test_distance_is_symmetric_and_in_miles() -> None:
    there = distance_miles(SF, LA)
    back = distance_miles(LA, SF)
    assert there is not None and back is not None
    assert math.isclose(there, back)
    assert 340 < there < 355


def test_distance_unknown_when_either_side_missing() -> None:
    assert distance_miles(None, LA) is None
    assert distance_miles(SF, None) is None
    assert distance_miles(SF, SF) == 0


@pytest.mark.parametrize(
    "miles, label",
    [
        (0.0, "<0.1 mi"),
        (0.09, "<0.1 mi"),
        (0.1, "0.1 mi"),
        (2.34, "2.3 mi"),
        (9.99, "10.0 mi"),
        (10.0, "10 mi"),
        (10.5, "11 mi"),
        (12.4, "12 mi"),
        (None, "-"),
        (float("nan"), "-"),
    ],
)
def test_format_distance_label(miles, label) -> None:
    assert format_distance_label(miles) == label


def test_normalize_coordinates_accepts_both_shapes() -> None:
    assert normalize_coordinates({"lat": 1.5, "lng": 2}) == LatLng(1.5, 2.0)
    assert normalize_coordinates({"latitude": -33.9, "longitude": 151.2}) == LatLng(-33.9, 151.2)


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "37.7,-122.4",
        {"lat": 0, "lng": 0},
        {"lat": "37.7", "lng": -122.4},
        {"lat": True, "lng": 1},
        {"lat": float("inf"), "lng": 10},
        {"lat": 91, "lng": 10},
        {"latitude": 10, "longitude": -181},
        {"lat": 10},
    ],
)
def test_normalize_coordinates_rejects_unusable(raw) -> None:
    assert normalize_coordinates(raw) is None
