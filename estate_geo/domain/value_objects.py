"""Immutable value types shared by the spatial stores and cluster aggregators."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from estate_geo.core.exceptions import ValidationError

LAT_MIN, LAT_MAX = -90.0, 90.0
LNG_MIN, LNG_MAX = -180.0, 180.0


def _as_coordinate(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be finite")
    return number


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        lat = _as_coordinate(self.lat, "lat")
        lng = _as_coordinate(self.lng, "lng")
        if not LAT_MIN <= lat <= LAT_MAX:
            raise ValidationError(f"lat out of range: {lat}")
        if not LNG_MIN <= lng <= LNG_MAX:
            raise ValidationError(f"lng out of range: {lng}")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)


@dataclass(frozen=True)
class GeoBounds:
    """Lat/lng envelope.

    ``west > east`` describes a box crossing the antimeridian. Such a box can
    be built (callers may receive one from a map widget) but every spatial
    operation rejects it with ``AntimeridianNotSupported``.
    """

    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        for name in ("north", "south", "east", "west"):
            object.__setattr__(self, name, _as_coordinate(getattr(self, name), name))
        if not (LAT_MIN <= self.south <= LAT_MAX and LAT_MIN <= self.north <= LAT_MAX):
            raise ValidationError("north/south out of range")
        if not (LNG_MIN <= self.west <= LNG_MAX and LNG_MIN <= self.east <= LNG_MAX):
            raise ValidationError("east/west out of range")
        if self.south > self.north:
            raise ValidationError("south must not exceed north")

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east


@dataclass(frozen=True)
class PropertyFilters:
    region_id: int | None = None
    property_class_id: int | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None

    def __post_init__(self) -> None:
        for name in ("min_price", "max_price"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool):
                raise ValidationError(f"{name} must be a number")
            try:
                price = value if isinstance(value, Decimal) else Decimal(str(value))
            except ArithmeticError as exc:
                raise ValidationError(f"{name} must be a number") from exc
            if not price.is_finite():
                raise ValidationError(f"{name} must be finite")
            object.__setattr__(self, name, price)
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValidationError("min_price must not exceed max_price")

    def matches(self, row: Any) -> bool:
        """Conjunctive in-memory predicate over a row's filter attributes."""

        if self.region_id is not None and getattr(row, "region_id", None) != self.region_id:
            return False
        if (
            self.property_class_id is not None
            and getattr(row, "property_class_id", None) != self.property_class_id
        ):
            return False
        price = getattr(row, "price", None)
        if self.min_price is not None and (price is None or price < self.min_price):
            return False
        if self.max_price is not None and (price is None or price > self.max_price):
            return False
        return True


@dataclass(frozen=True)
class SpatialQuerySpec:
    """Either a radius query (center + radius_km) or a bounds query."""

    center: GeoPoint | None = None
    radius_km: float | None = None
    bounds: GeoBounds | None = None
    filters: PropertyFilters = field(default_factory=PropertyFilters)

    def __post_init__(self) -> None:
        has_radius = self.center is not None or self.radius_km is not None
        if has_radius and self.bounds is not None:
            raise ValidationError("radius and bounds are mutually exclusive")
        if not has_radius and self.bounds is None:
            raise ValidationError("either center+radius_km or bounds is required")
        if has_radius:
            if self.center is None or self.radius_km is None:
                raise ValidationError("center and radius_km must be given together")
            radius = _as_coordinate(self.radius_km, "radius_km")
            if radius < 0:
                raise ValidationError("radius_km must be >= 0")
            object.__setattr__(self, "radius_km", radius)
        if self.filters is None:
            object.__setattr__(self, "filters", PropertyFilters())

    @classmethod
    def radius(
        cls, center: GeoPoint, radius_km: float, filters: PropertyFilters | None = None
    ) -> SpatialQuerySpec:
        return cls(center=center, radius_km=radius_km, filters=filters or PropertyFilters())

    @classmethod
    def within(cls, bounds: GeoBounds, filters: PropertyFilters | None = None) -> SpatialQuerySpec:
        return cls(bounds=bounds, filters=filters or PropertyFilters())

    @property
    def is_radius(self) -> bool:
        return self.bounds is None
