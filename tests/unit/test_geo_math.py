"""Unit tests for distance math and envelope helpers."""

from __future__ import annotations

import math

import pytest

from estate_geo.core.exceptions import AntimeridianNotSupported, ValidationError
from estate_geo.domain.value_objects import GeoBounds, GeoPoint
from estate_geo.utils.geo import (
    bounding_box_km,
    ensure_no_wrap,
    haversine_km,
    point_in_bounds,
)

pytestmark = pytest.mark.unit

MOSCOW = GeoPoint(lat=55.7558, lng=37.6176)


def test_haversine_zero_for_same_point() -> None:
    assert haversine_km(MOSCOW, MOSCOW) == 0.0


def test_haversine_one_degree_of_latitude() -> None:
    a = GeoPoint(lat=0.0, lng=0.0)
    b = GeoPoint(lat=1.0, lng=0.0)
    assert haversine_km(a, b) == pytest.approx(6371.0 * math.pi / 180.0, rel=1e-12)


def test_haversine_is_symmetric() -> None:
    spb = GeoPoint(lat=59.9343, lng=30.3351)
    assert haversine_km(MOSCOW, spb) == haversine_km(spb, MOSCOW)
    assert haversine_km(MOSCOW, spb) == pytest.approx(634.0, abs=5.0)


def test_haversine_antipodes_do_not_blow_up() -> None:
    a = GeoPoint(lat=0.0, lng=0.0)
    b = GeoPoint(lat=0.0, lng=180.0)
    assert haversine_km(a, b) == pytest.approx(math.pi * 6371.0)


def test_point_in_bounds_is_inclusive_on_every_edge() -> None:
    bounds = GeoBounds(north=56.0, south=55.0, east=38.0, west=37.0)
    for point in (
        GeoPoint(lat=56.0, lng=37.5),
        GeoPoint(lat=55.0, lng=37.5),
        GeoPoint(lat=55.5, lng=38.0),
        GeoPoint(lat=55.5, lng=37.0),
        GeoPoint(lat=56.0, lng=38.0),
    ):
        assert point_in_bounds(point, bounds)
    assert not point_in_bounds(GeoPoint(lat=56.0000001, lng=37.5), bounds)
    assert not point_in_bounds(GeoPoint(lat=55.5, lng=36.9999999), bounds)


def test_antimeridian_bounds_are_constructible_but_rejected() -> None:
    bounds = GeoBounds(north=10.0, south=-10.0, east=-170.0, west=170.0)
    assert bounds.crosses_antimeridian
    with pytest.raises(AntimeridianNotSupported):
        ensure_no_wrap(bounds)
    with pytest.raises(AntimeridianNotSupported):
        point_in_bounds(GeoPoint(lat=0.0, lng=175.0), bounds)


def test_antimeridian_error_is_a_validation_error() -> None:
    assert issubclass(AntimeridianNotSupported, ValidationError)


@pytest.mark.parametrize("radius_km", [0.5, 3.0, 25.0, 150.0])
def test_bounding_box_contains_the_whole_circle(radius_km: float) -> None:
    box = bounding_box_km(MOSCOW, radius_km)
    assert not box.crosses_antimeridian
    for bearing in range(0, 360, 5):
        theta = math.radians(bearing)
        # Walk just inside the circle along the bearing (spherical destination formula)
        d = (radius_km * 0.999999) / 6371.0
        lat1 = math.radians(MOSCOW.lat)
        lng1 = math.radians(MOSCOW.lng)
        lat2 = math.asin(
            math.sin(lat1) * math.cos(d) + math.cos(lat1) * math.sin(d) * math.cos(theta)
        )
        lng2 = lng1 + math.atan2(
            math.sin(theta) * math.sin(d) * math.cos(lat1),
            math.cos(d) - math.sin(lat1) * math.sin(lat2),
        )
        edge = GeoPoint(lat=math.degrees(lat2), lng=math.degrees(lng2))
        assert haversine_km(MOSCOW, edge) <= radius_km
        assert point_in_bounds(edge, box)


def test_bounding_box_near_pole_spans_all_longitudes() -> None:
    box = bounding_box_km(GeoPoint(lat=89.99, lng=10.0), 50.0)
    assert box.north == 90.0
    assert box.west == -180.0
    assert box.east == 180.0


def test_bounding_box_touching_antimeridian_falls_back_to_full_longitude_range() -> None:
    box = bounding_box_km(GeoPoint(lat=0.0, lng=179.99), 10.0)
    assert not box.crosses_antimeridian
    assert box.west == -180.0 and box.east == 180.0
