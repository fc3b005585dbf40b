"""Geodesic helpers shared by the indexed and the fallback query paths."""

from __future__ import annotations

import math

from estate_geo.core.exceptions import AntimeridianNotSupported
from estate_geo.domain.value_objects import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN, GeoBounds, GeoPoint

EARTH_RADIUS_KM = 6371.0

# Slack added to envelope prefilters so float noise never drops a border point.
_ENVELOPE_EPSILON_DEG = 1e-9


def haversine_km(a: GeoPoint, b: GeoPoint, *, radius_km: float = EARTH_RADIUS_KM) -> float:
    """Compute the great-circle distance between two points in kilometres.

    The implementation mirrors the SQL expression used by the indexed
    repository and clamps the intermediate value to avoid floating point
    drift near the poles.
    """

    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = phi2 - phi1
    dlambda = math.radians(b.lng - a.lng)

    sin_dphi = math.sin(dphi / 2.0)
    sin_dlambda = math.sin(dlambda / 2.0)

    h = sin_dphi**2 + math.cos(phi1) * math.cos(phi2) * sin_dlambda**2
    h = min(1.0, max(0.0, h))
    c = 2.0 * math.asin(math.sqrt(h))
    return radius_km * c


def bounds_contains_no_wrap(bounds: GeoBounds) -> bool:
    return bounds.west <= bounds.east


def ensure_no_wrap(bounds: GeoBounds) -> GeoBounds:
    if not bounds_contains_no_wrap(bounds):
        raise AntimeridianNotSupported(
            f"bounds crossing the antimeridian are not supported "
            f"(west={bounds.west}, east={bounds.east})"
        )
    return bounds


def point_in_bounds(point: GeoPoint, bounds: GeoBounds) -> bool:
    """Inclusive on all four edges."""

    ensure_no_wrap(bounds)
    return (
        bounds.south <= point.lat <= bounds.north and bounds.west <= point.lng <= bounds.east
    )


def bounding_box_km(center: GeoPoint, radius_km: float) -> GeoBounds:
    """Smallest lat/lng envelope (no wrap) enclosing the radius circle.

    Falls back to the full longitude range when the circle reaches a pole
    or would cross the antimeridian.
    """

    angular = radius_km / EARTH_RADIUS_KM
    dlat = math.degrees(angular) + _ENVELOPE_EPSILON_DEG
    south = max(LAT_MIN, center.lat - dlat)
    north = min(LAT_MAX, center.lat + dlat)

    cos_lat = math.cos(math.radians(center.lat))
    if north >= LAT_MAX or south <= LAT_MIN or math.sin(angular) >= cos_lat:
        return GeoBounds(north=north, south=south, east=LNG_MAX, west=LNG_MIN)

    dlng = math.degrees(math.asin(math.sin(angular) / cos_lat)) + _ENVELOPE_EPSILON_DEG
    west = center.lng - dlng
    east = center.lng + dlng
    if west < LNG_MIN or east > LNG_MAX:
        west, east = LNG_MIN, LNG_MAX
    return GeoBounds(north=north, south=south, east=east, west=west)


__all__ = [
    "EARTH_RADIUS_KM",
    "haversine_km",
    "bounds_contains_no_wrap",
    "ensure_no_wrap",
    "point_in_bounds",
    "bounding_box_km",
]
