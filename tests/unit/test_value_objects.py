from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from estate_geo.core.exceptions import ValidationError
from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters, SpatialQuerySpec

pytestmark = pytest.mark.unit


def test_geopoint_coerces_ints_and_decimals_to_float() -> None:
    point = GeoPoint(lat=55, lng=Decimal("37.5"))
    assert point == GeoPoint(lat=55.0, lng=37.5)
    assert isinstance(point.lat, float) and isinstance(point.lng, float)


@pytest.mark.parametrize(
    "lat,lng",
    [(90.1, 0.0), (-90.1, 0.0), (0.0, 180.5), (0.0, -181.0), (float("nan"), 0.0), ("55", 37.0)],
)
def test_geopoint_rejects_invalid_coordinates(lat, lng) -> None:
    with pytest.raises(ValidationError):
        GeoPoint(lat=lat, lng=lng)


def test_bounds_reject_inverted_latitudes() -> None:
    with pytest.raises(ValidationError):
        GeoBounds(north=55.0, south=56.0, east=38.0, west=37.0)


def test_filters_normalise_prices_to_decimal() -> None:
    filters = PropertyFilters(min_price=100, max_price="250.50")
    assert filters.min_price == Decimal("100")
    assert filters.max_price == Decimal("250.50")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_price": 10, "max_price": 5},
        {"min_price": "abc"},
        {"max_price": float("inf")},
        {"min_price": True},
    ],
)
def test_filters_reject_invalid_prices(kwargs) -> None:
    with pytest.raises(ValidationError):
        PropertyFilters(**kwargs)


def test_filters_match_is_conjunctive() -> None:
    filters = PropertyFilters(region_id=2, property_class_id=1, min_price=100, max_price=200)
    row = SimpleNamespace(region_id=2, property_class_id=1, price=Decimal("150"))
    assert filters.matches(row)
    assert not filters.matches(SimpleNamespace(region_id=3, property_class_id=1, price=150))
    assert not filters.matches(SimpleNamespace(region_id=2, property_class_id=2, price=150))
    assert not filters.matches(SimpleNamespace(region_id=2, property_class_id=1, price=99))
    assert filters.matches(SimpleNamespace(region_id=2, property_class_id=1, price=200))


def test_query_spec_requires_exactly_one_shape() -> None:
    center = GeoPoint(lat=55.0, lng=37.0)
    bounds = GeoBounds(north=56.0, south=55.0, east=38.0, west=37.0)

    with pytest.raises(ValidationError):
        SpatialQuerySpec()
    with pytest.raises(ValidationError):
        SpatialQuerySpec(center=center, radius_km=1.0, bounds=bounds)
    with pytest.raises(ValidationError):
        SpatialQuerySpec(center=center)

    assert SpatialQuerySpec.radius(center, 2).is_radius
    assert not SpatialQuerySpec.within(bounds).is_radius


@pytest.mark.parametrize("radius_km", [-0.1, float("nan"), float("inf")])
def test_query_spec_rejects_bad_radius(radius_km) -> None:
    with pytest.raises(ValidationError):
        SpatialQuerySpec.radius(GeoPoint(lat=55.0, lng=37.0), radius_km)


def test_zero_radius_is_allowed() -> None:
    spec = SpatialQuerySpec.radius(GeoPoint(lat=55.0, lng=37.0), 0)
    assert spec.radius_km == 0.0
    assert spec.filters == PropertyFilters()
