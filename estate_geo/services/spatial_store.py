"""Radius and bounds lookups behind one interface, indexed or in-memory.

Both stores return the same matches for the same data snapshot:

- radius queries: ascending distance, ties broken by ascending id
- bounds queries: ascending id

Distances always come from ``haversine_km`` so the two paths agree to the bit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from estate_geo.core.config import Settings, settings
from estate_geo.core.exceptions import DecodeError, QueryCancelled, UpstreamUnavailable
from estate_geo.domain.value_objects import GeoPoint, SpatialQuerySpec
from estate_geo.infra.unit_of_work import UnitOfWork
from estate_geo.repositories.interfaces import PropertyMatch, PropertyRow
from estate_geo.utils.coordinates import decode
from estate_geo.utils.geo import bounding_box_km, ensure_no_wrap, haversine_km, point_in_bounds

UnitOfWorkFactory = Callable[[], UnitOfWork]

# Errors from the storage layer that mean "this path is unusable right now".
UPSTREAM_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError)

logger = structlog.get_logger(__name__)


def raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise QueryCancelled("geo query cancelled by caller")


async def checkpoint(cancel: asyncio.Event | None) -> None:
    """Batch boundary: honour the caller's token and let the loop run."""

    raise_if_cancelled(cancel)
    await asyncio.sleep(0)


def rank_by_distance(
    candidates: Iterable[tuple[int, float]], radius_km: float, cap: int
) -> list[PropertyMatch]:
    within = sorted((distance, pid) for pid, distance in candidates if distance <= radius_km)
    return [PropertyMatch(id=pid, distance_km=distance) for distance, pid in within[:cap]]


class SpatialStore(Protocol):
    name: str

    async def query(
        self, spec: SpatialQuerySpec, *, cancel: asyncio.Event | None = None
    ) -> list[PropertyMatch]: ...


class IndexedSpatialStore:
    """Delegates the spatial predicate and filters to the PostGIS repository."""

    name = "indexed"

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        radius_cap: int | None = None,
        bounds_cap: int | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._radius_cap = radius_cap or settings.geo_radius_result_cap
        self._bounds_cap = bounds_cap or settings.geo_bounds_result_cap

    async def query(
        self, spec: SpatialQuerySpec, *, cancel: asyncio.Event | None = None
    ) -> list[PropertyMatch]:
        raise_if_cancelled(cancel)
        if spec.is_radius:
            return await self._radius(spec)
        ensure_no_wrap(spec.bounds)
        try:
            async with self._uow_factory() as uow:
                rows = await uow.properties.find_within_bounds(
                    bounds=spec.bounds, filters=spec.filters, limit=self._bounds_cap
                )
        except UPSTREAM_ERRORS as exc:
            raise UpstreamUnavailable(f"indexed bounds query failed: {exc}") from exc
        ids = sorted(row.id for row in rows)
        return [PropertyMatch(id=pid) for pid in ids[: self._bounds_cap]]

    async def _radius(self, spec: SpatialQuerySpec) -> list[PropertyMatch]:
        center = spec.center
        try:
            async with self._uow_factory() as uow:
                rows = await uow.properties.find_within_radius(
                    center=center,
                    radius_km=spec.radius_km,
                    envelope=bounding_box_km(center, spec.radius_km),
                    filters=spec.filters,
                    limit=self._radius_cap,
                )
        except UPSTREAM_ERRORS as exc:
            raise UpstreamUnavailable(f"indexed radius query failed: {exc}") from exc
        return rank_by_distance(
            ((row.id, haversine_km(center, GeoPoint(lat=row.lat, lng=row.lng))) for row in rows),
            spec.radius_km,
            self._radius_cap,
        )


@dataclass
class Candidate:
    """A decoded row that passed the spatial predicate and the filters."""

    row: PropertyRow
    point: GeoPoint
    distance_km: float | None = None


class FallbackSpatialStore:
    """Scans a bounded working set of active rows in memory.

    Rows whose coordinates cannot be decoded are skipped and counted; they
    never fail the request.
    """

    name = "fallback"

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        radius_cap: int | None = None,
        bounds_cap: int | None = None,
        radius_scan_cap: int | None = None,
        bounds_scan_cap: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._radius_cap = radius_cap or settings.geo_radius_result_cap
        self._bounds_cap = bounds_cap or settings.geo_bounds_result_cap
        self._radius_scan_cap = radius_scan_cap or settings.geo_fallback_radius_scan_cap
        self._bounds_scan_cap = bounds_scan_cap or settings.geo_fallback_bounds_scan_cap
        self._batch_size = batch_size or settings.geo_fallback_batch_size

    async def _load(self, limit: int) -> list[PropertyRow]:
        try:
            async with self._uow_factory() as uow:
                return await uow.properties.fetch_active(limit=limit)
        except UPSTREAM_ERRORS as exc:
            raise UpstreamUnavailable(f"fallback row fetch failed: {exc}") from exc

    async def scan(
        self, spec: SpatialQuerySpec, *, cancel: asyncio.Event | None = None
    ) -> list[Candidate]:
        if not spec.is_radius:
            ensure_no_wrap(spec.bounds)
        raise_if_cancelled(cancel)

        scan_cap = self._radius_scan_cap if spec.is_radius else self._bounds_scan_cap
        rows = await self._load(scan_cap)

        candidates: list[Candidate] = []
        skipped = 0
        for start in range(0, len(rows), self._batch_size):
            await checkpoint(cancel)
            for row in rows[start : start + self._batch_size]:
                try:
                    point = decode(row.coordinates)
                except DecodeError:
                    skipped += 1
                    continue

                distance = None
                if spec.is_radius:
                    distance = haversine_km(spec.center, point)
                    if distance > spec.radius_km:
                        continue
                elif not point_in_bounds(point, spec.bounds):
                    continue

                if not spec.filters.matches(row):
                    continue
                candidates.append(Candidate(row=row, point=point, distance_km=distance))

        if skipped:
            logger.warning("geo_fallback_decode_skipped", skipped=skipped, scanned=len(rows))

        if spec.is_radius:
            candidates.sort(key=lambda c: (c.distance_km, c.row.id))
            return candidates[: self._radius_cap]
        candidates.sort(key=lambda c: c.row.id)
        return candidates[: self._bounds_cap]

    async def query(
        self, spec: SpatialQuerySpec, *, cancel: asyncio.Event | None = None
    ) -> list[PropertyMatch]:
        candidates = await self.scan(spec, cancel=cancel)
        return [PropertyMatch(id=c.row.id, distance_km=c.distance_km) for c in candidates]


def build_stores(
    uow_factory: UnitOfWorkFactory, config: Settings = settings
) -> tuple[IndexedSpatialStore, FallbackSpatialStore]:
    indexed = IndexedSpatialStore(
        uow_factory,
        radius_cap=config.geo_radius_result_cap,
        bounds_cap=config.geo_bounds_result_cap,
    )
    fallback = FallbackSpatialStore(
        uow_factory,
        radius_cap=config.geo_radius_result_cap,
        bounds_cap=config.geo_bounds_result_cap,
        radius_scan_cap=config.geo_fallback_radius_scan_cap,
        bounds_scan_cap=config.geo_fallback_bounds_scan_cap,
        batch_size=config.geo_fallback_batch_size,
    )
    return indexed, fallback
