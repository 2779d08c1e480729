"""Tests for haversine distance, geofence containment and coordinate checks."""

import math

import pytest

from geoattend.services.geofence import (GeoPoint, distance, evaluate,
                                         valid_coordinates)

MANILA = GeoPoint(14.5995, 120.9842)


def test_distance_to_self_is_zero():
    assert distance(MANILA, MANILA) == 0


def test_distance_is_symmetric():
    other = GeoPoint(14.6095, 120.9942)
    assert distance(MANILA, other) == pytest.approx(distance(other, MANILA))


def test_one_degree_of_latitude():
    d = distance(GeoPoint(0, 0), GeoPoint(1, 0))
    assert d == pytest.approx(111_195, abs=1)


def test_point_inside_radius():
    point = GeoPoint(MANILA.lat + 10 / 111_195, MANILA.lng)
    result = evaluate(point, MANILA, 30)
    assert result.is_within is True
    assert result.distance == 10
    assert result.exceeded_by == 0


def test_point_outside_radius_reports_excess():
    point = GeoPoint(MANILA.lat + 100 / 111_195, MANILA.lng)
    result = evaluate(point, MANILA, 30)
    assert result.is_within is False
    assert result.distance == 100
    assert result.exceeded_by == 70
    assert result.as_dict() == {"isWithin": False, "distance": 100, "radius": 30, "exceededBy": 70}


def test_boundary_counts_as_inside():
    point = GeoPoint(MANILA.lat + 30 / 111_195, MANILA.lng)
    exact = distance(point, MANILA)
    assert evaluate(point, MANILA, exact).is_within is True


@pytest.mark.parametrize(
    "lat,lng",
    [
        (0, 0),
        (-90, 180),
        (90, -180),
        (14.5995, 120.9842),
    ],
)
def test_valid_coordinates(lat, lng):
    assert valid_coordinates(lat, lng) is True


@pytest.mark.parametrize(
    "lat,lng",
    [
        (None, 0),
        (0, None),
        (90.0001, 0),
        (0, -180.5),
        (math.nan, 0),
        (0, math.inf),
        (True, 0),
        ("14.5", "120.9"),
    ],
)
def test_invalid_coordinates(lat, lng):
    assert valid_coordinates(lat, lng) is False
