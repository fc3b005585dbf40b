"""Zoom-dependent grid clustering of properties for map markers.

The grid is keyed by ``(floor(lat * cpd), floor(lng * cpd))`` where ``cpd``
(cells per degree) depends only on the zoom level. One ``ClusterCell`` is
emitted per occupied grid cell; the densest cells come first.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Protocol

import structlog

from estate_geo.core.config import Settings, settings
from estate_geo.core.exceptions import UpstreamUnavailable, ValidationError
from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters, SpatialQuerySpec
from estate_geo.repositories.interfaces import ClusterCell, GridCellRow
from estate_geo.services.spatial_store import (
    UPSTREAM_ERRORS,
    FallbackSpatialStore,
    UnitOfWorkFactory,
    checkpoint,
    raise_if_cancelled,
)
from estate_geo.utils.geo import ensure_no_wrap

MIN_ZOOM = 0
MAX_ZOOM = 24

_PRICE_QUANTUM = Decimal("0.01")

logger = structlog.get_logger(__name__)


def validate_zoom(zoom: int) -> int:
    if isinstance(zoom, bool) or not isinstance(zoom, int):
        raise ValidationError("zoom must be an integer")
    if not MIN_ZOOM <= zoom <= MAX_ZOOM:
        raise ValidationError(f"zoom must be within {MIN_ZOOM}..{MAX_ZOOM}")
    return zoom


def grid_scale(zoom: int, *, base: float, reference_zoom: int) -> float:
    return 2 ** max(0, reference_zoom - zoom) * base


def cells_per_degree(
    zoom: int,
    *,
    base: float | None = None,
    reference_zoom: int | None = None,
) -> float:
    """Grid resolution for a zoom level.

    Resolution is ``base^2 / grid_scale(zoom)`` (``100 / 2^(16 - zoom)`` by
    default): ``base`` cells per degree (~1.1 km) at the reference zoom and
    above, halving with every zoom level below it.
    """

    base = settings.geo_cluster_base_cells_per_degree if base is None else base
    if reference_zoom is None:
        reference_zoom = settings.geo_cluster_reference_zoom
    return base * base / grid_scale(zoom, base=base, reference_zoom=reference_zoom)


def cell_key(point: GeoPoint, cpd: float) -> tuple[int, int]:
    return math.floor(point.lat * cpd), math.floor(point.lng * cpd)


def average_price(total: Decimal, count: int) -> Decimal:
    return (total / Decimal(count)).quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)


def _rank(keyed: list[tuple[tuple[int, int], ClusterCell]], cap: int) -> list[ClusterCell]:
    keyed.sort(key=lambda item: (-item[1].count, item[0]))
    return [cell for _, cell in keyed[:cap]]


class ClusterAggregator(Protocol):
    name: str

    async def clusters(
        self,
        bounds: GeoBounds,
        zoom: int,
        filters: PropertyFilters,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[ClusterCell]: ...


class IndexedClusterAggregator:
    """Pushes the grid grouping down to the PostGIS repository."""

    name = "indexed"

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        row_cap: int | None = None,
        cell_cap: int | None = None,
        base: float | None = None,
        reference_zoom: int | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._row_cap = row_cap or settings.geo_bounds_result_cap
        self._cell_cap = cell_cap or settings.geo_cluster_cell_cap
        self._base = base
        self._reference_zoom = reference_zoom

    async def clusters(
        self,
        bounds: GeoBounds,
        zoom: int,
        filters: PropertyFilters,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[ClusterCell]:
        ensure_no_wrap(bounds)
        raise_if_cancelled(cancel)
        cpd = cells_per_degree(
            validate_zoom(zoom), base=self._base, reference_zoom=self._reference_zoom
        )
        try:
            async with self._uow_factory() as uow:
                rows = await uow.properties.aggregate_grid(
                    bounds=bounds,
                    filters=filters,
                    cells_per_degree=cpd,
                    row_limit=self._row_cap,
                    cell_limit=self._cell_cap,
                )
        except UPSTREAM_ERRORS as exc:
            raise UpstreamUnavailable(f"indexed clustering failed: {exc}") from exc
        return _rank([self._to_cell(row) for row in rows], self._cell_cap)

    @staticmethod
    def _to_cell(row: GridCellRow) -> tuple[tuple[int, int], ClusterCell]:
        cell = ClusterCell(
            centroid=GeoPoint(lat=row.avg_lat, lng=row.avg_lng),
            count=row.count,
            min_price=row.min_price,
            max_price=row.max_price,
            avg_price=average_price(row.sum_price, row.count),
            member_ids=sorted(row.member_ids),
        )
        return (row.lat_key, row.lng_key), cell


@dataclass
class _CellAccumulator:
    count: int = 0
    sum_price: Decimal = Decimal(0)
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    sum_lat: float = 0.0
    sum_lng: float = 0.0
    member_ids: list[int] = field(default_factory=list)

    def add(self, pid: int, point: GeoPoint, price: Decimal) -> None:
        self.count += 1
        self.sum_price += price
        self.min_price = price if self.min_price is None else min(self.min_price, price)
        self.max_price = price if self.max_price is None else max(self.max_price, price)
        self.sum_lat += point.lat
        self.sum_lng += point.lng
        self.member_ids.append(pid)

    def to_cell(self) -> ClusterCell:
        return ClusterCell(
            centroid=GeoPoint(lat=self.sum_lat / self.count, lng=self.sum_lng / self.count),
            count=self.count,
            min_price=self.min_price,
            max_price=self.max_price,
            avg_price=average_price(self.sum_price, self.count),
            member_ids=sorted(self.member_ids),
        )


class FallbackClusterAggregator:
    """Groups the fallback bounds scan in memory."""

    name = "fallback"

    def __init__(
        self,
        store: FallbackSpatialStore,
        *,
        cell_cap: int | None = None,
        batch_size: int | None = None,
        base: float | None = None,
        reference_zoom: int | None = None,
    ) -> None:
        self._store = store
        self._cell_cap = cell_cap or settings.geo_cluster_cell_cap
        self._batch_size = batch_size or settings.geo_fallback_batch_size
        self._base = base
        self._reference_zoom = reference_zoom

    async def clusters(
        self,
        bounds: GeoBounds,
        zoom: int,
        filters: PropertyFilters,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[ClusterCell]:
        cpd = cells_per_degree(
            validate_zoom(zoom), base=self._base, reference_zoom=self._reference_zoom
        )
        candidates = await self._store.scan(SpatialQuerySpec.within(bounds, filters), cancel=cancel)

        grid: dict[tuple[int, int], _CellAccumulator] = {}
        for start in range(0, len(candidates), self._batch_size):
            await checkpoint(cancel)
            for candidate in candidates[start : start + self._batch_size]:
                key = cell_key(candidate.point, cpd)
                grid.setdefault(key, _CellAccumulator()).add(
                    candidate.row.id, candidate.point, candidate.row.price
                )

        logger.debug("geo_fallback_grid", zoom=zoom, cells=len(grid), members=len(candidates))
        return _rank([(key, acc.to_cell()) for key, acc in grid.items()], self._cell_cap)


def build_aggregators(
    uow_factory: UnitOfWorkFactory,
    fallback_store: FallbackSpatialStore,
    config: Settings = settings,
) -> tuple[IndexedClusterAggregator, FallbackClusterAggregator]:
    indexed = IndexedClusterAggregator(
        uow_factory,
        row_cap=config.geo_bounds_result_cap,
        cell_cap=config.geo_cluster_cell_cap,
        base=config.geo_cluster_base_cells_per_degree,
        reference_zoom=config.geo_cluster_reference_zoom,
    )
    fallback = FallbackClusterAggregator(
        fallback_store,
        cell_cap=config.geo_cluster_cell_cap,
        batch_size=config.geo_fallback_batch_size,
        base=config.geo_cluster_base_cells_per_degree,
        reference_zoom=config.geo_cluster_reference_zoom,
    )
    return indexed, fallback
