"""Repository abstractions for the geo services."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters


@dataclass
class PropertyRow:
    """Active listing as stored, coordinates still in their raw form."""

    id: int
    coordinates: Any
    price: Decimal
    region_id: int | None = None
    property_class_id: int | None = None


@dataclass
class SpatialRow:
    """Listing returned by the spatial backend with coordinates already parsed."""

    id: int
    lat: float
    lng: float
    price: Decimal


@dataclass
class GridCellRow:
    """Per-cell aggregate computed by the spatial backend."""

    lat_key: int
    lng_key: int
    count: int
    min_price: Decimal
    max_price: Decimal
    sum_price: Decimal
    avg_lat: float
    avg_lng: float
    member_ids: list[int] = field(default_factory=list)


@dataclass
class PropertyMatch:
    id: int
    distance_km: float | None = None


@dataclass
class ClusterCell:
    centroid: GeoPoint
    count: int
    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal
    member_ids: list[int] = field(default_factory=list)


class PropertyGeoReadRepository(Protocol):
    """Read-only boundary to the property storage layer.

    The ``find_*`` and ``aggregate_grid`` methods need a spatially-indexed
    backend; ``fetch_active`` is a plain bounded row fetch used by the
    fallback path.
    """

    async def find_within_radius(
        self,
        *,
        center: GeoPoint,
        radius_km: float,
        envelope: GeoBounds,
        filters: PropertyFilters,
        limit: int,
    ) -> list[SpatialRow]: ...

    async def find_within_bounds(
        self, *, bounds: GeoBounds, filters: PropertyFilters, limit: int
    ) -> list[SpatialRow]: ...

    async def aggregate_grid(
        self,
        *,
        bounds: GeoBounds,
        filters: PropertyFilters,
        cells_per_degree: float,
        row_limit: int,
        cell_limit: int,
    ) -> list[GridCellRow]: ...

    async def fetch_active(self, *, limit: int) -> list[PropertyRow]: ...

    async def spatial_backend_version(self) -> str | None: ...
