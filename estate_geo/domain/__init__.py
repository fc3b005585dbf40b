"""Value objects for geo queries."""

from .value_objects import GeoBounds, GeoPoint, PropertyFilters, SpatialQuerySpec

__all__ = ["GeoPoint", "GeoBounds", "PropertyFilters", "SpatialQuerySpec"]
