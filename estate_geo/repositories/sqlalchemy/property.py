"""SQLAlchemy/PostGIS implementation of the property geo repository."""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy import Float, Select, Text, cast, func, literal, literal_column, select, text
from sqlalchemy.dialects.postgresql import aggregate_order_by
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters
from estate_geo.models import Property
from estate_geo.repositories.interfaces import (
    GridCellRow,
    PropertyGeoReadRepository,
    PropertyRow,
    SpatialRow,
)
from estate_geo.utils.coordinates import WGS84_SRID
from estate_geo.utils.geo import EARTH_RADIUS_KM

# Distance slack (km) so SQL float noise never drops a point the exact
# in-process check would keep; the service re-applies the exact bound.
_RADIUS_SLACK_KM = 1e-6


def _decimal(value) -> Decimal:  # type: ignore[no-untyped-def]
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# Regexes shared by the SQL below and the in-memory repository used in tests.
# Numbers are bounded so a matched string always casts to float8 without
# overflow; rows matching no pattern get a NULL point and drop out of every
# spatial predicate, the same rows the codec rejects.
_SQL_NUM = r"[-+]?(?:[0-9]{1,3}(?:\.[0-9]{0,30})?|\.[0-9]{1,30})(?:[eE][-+]?[0-9]{1,2})?"
_JSON_NUM = r"-?(?:0|[1-9][0-9]{0,2})(?:\.[0-9]{1,30})?(?:[eE][-+]?[0-9]{1,2})?"
_WKT_HEAD = r"(?i)^\s*(?:SRID=4326\s*;\s*)?POINT\s*\(\s*"

STORED_LAT_PATTERNS = (
    rf"{_WKT_HEAD}{_SQL_NUM}\s+({_SQL_NUM})\s*\)\s*$",
    rf'^\s*\{{[^{{}}]*"lat"\s*:\s*({_JSON_NUM})\s*[,}}]',
    rf"^\s*({_SQL_NUM})\s*,\s*{_SQL_NUM}\s*$",
)
STORED_LNG_PATTERNS = (
    rf"{_WKT_HEAD}({_SQL_NUM})\s+{_SQL_NUM}\s*\)\s*$",
    rf'^\s*\{{[^{{}}]*"lng"\s*:\s*({_JSON_NUM})\s*[,}}]',
    rf"^\s*{_SQL_NUM}\s*,\s*({_SQL_NUM})\s*$",
)


def _pattern(value: str):  # type: ignore[no-untyped-def]
    # Inlined so the expression matches a GiST expression index verbatim
    return literal_column("'" + value.replace("'", "''") + "'", Text)


def _stored_degrees(patterns: tuple[str, ...]):  # type: ignore[no-untyped-def]
    # The encodings are told apart by their first character, so at most one
    # pattern matches a given row.
    matches = [func.substring(Property.coordinates, _pattern(p)) for p in patterns]
    return cast(func.coalesce(*matches), Float)


def _stored_lat():  # type: ignore[no-untyped-def]
    return _stored_degrees(STORED_LAT_PATTERNS)


def _stored_lng():  # type: ignore[no-untyped-def]
    return _stored_degrees(STORED_LNG_PATTERNS)


def _geom():  # type: ignore[no-untyped-def]
    return func.ST_SetSRID(func.ST_MakePoint(_stored_lng(), _stored_lat()), WGS84_SRID)


def _envelope(bounds: GeoBounds):  # type: ignore[no-untyped-def]
    return func.ST_MakeEnvelope(bounds.west, bounds.south, bounds.east, bounds.north, WGS84_SRID)


def _haversine_km(center: GeoPoint, lat, lng):  # type: ignore[no-untyped-def]
    lat0_rad = func.radians(literal(center.lat))
    lng0_rad = func.radians(literal(center.lng))
    lat_rad = func.radians(lat)
    lng_rad = func.radians(lng)

    dlat = lat_rad - lat0_rad
    dlng = lng_rad - lng0_rad

    a = func.pow(func.sin(dlat / 2.0), 2) + func.cos(lat0_rad) * func.cos(lat_rad) * func.pow(
        func.sin(dlng / 2.0), 2
    )
    c = 2.0 * func.asin(func.sqrt(func.least(1.0, a)))
    return EARTH_RADIUS_KM * c


def _active(stmt: Select) -> Select:
    return stmt.where(Property.is_active.is_(True), Property.coordinates.is_not(None))


def _apply_filters(stmt: Select, filters: PropertyFilters) -> Select:
    if filters.region_id is not None:
        stmt = stmt.where(Property.region_id == filters.region_id)
    if filters.property_class_id is not None:
        stmt = stmt.where(Property.property_class_id == filters.property_class_id)
    if filters.min_price is not None:
        stmt = stmt.where(Property.price >= filters.min_price)
    if filters.max_price is not None:
        stmt = stmt.where(Property.price <= filters.max_price)
    return stmt


class SqlAlchemyPropertyGeoRepository(PropertyGeoReadRepository):
    """PostGIS-backed implementation.

    Coordinates are free text in any of the three stored encodings. The
    point is rebuilt in SQL from regex captures (``_geom``) rather than
    ``ST_GeomFromText``, which aborts the whole statement on the first JSON
    or ``lat,lng`` row. A GiST expression index on ``_geom`` keeps the
    envelope predicates index-assisted.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_within_radius(
        self,
        *,
        center: GeoPoint,
        radius_km: float,
        envelope: GeoBounds,
        filters: PropertyFilters,
        limit: int,
    ) -> list[SpatialRow]:
        geom = _geom()
        lat = func.ST_Y(geom)
        lng = func.ST_X(geom)
        distance = _haversine_km(center, lat, lng)

        stmt = select(
            Property.id,
            lat.label("lat"),
            lng.label("lng"),
            Property.price,
            distance.label("distance_km"),
        )
        stmt = _active(stmt).where(func.ST_Covers(_envelope(envelope), geom))
        stmt = stmt.where(distance <= float(radius_km) + _RADIUS_SLACK_KM)
        stmt = _apply_filters(stmt, filters)
        stmt = stmt.order_by(distance.asc(), Property.id.asc()).limit(int(limit))

        rows = await self._session.execute(stmt)
        return [
            SpatialRow(
                id=int(row.id), lat=float(row.lat), lng=float(row.lng), price=_decimal(row.price)
            )
            for row in rows.all()
        ]

    async def find_within_bounds(
        self, *, bounds: GeoBounds, filters: PropertyFilters, limit: int
    ) -> list[SpatialRow]:
        geom = _geom()
        stmt = select(
            Property.id,
            func.ST_Y(geom).label("lat"),
            func.ST_X(geom).label("lng"),
            Property.price,
        )
        stmt = _active(stmt).where(func.ST_Covers(_envelope(bounds), geom))
        stmt = _apply_filters(stmt, filters)
        stmt = stmt.order_by(Property.id.asc()).limit(int(limit))

        rows = await self._session.execute(stmt)
        return [
            SpatialRow(
                id=int(row.id), lat=float(row.lat), lng=float(row.lng), price=_decimal(row.price)
            )
            for row in rows.all()
        ]

    async def aggregate_grid(
        self,
        *,
        bounds: GeoBounds,
        filters: PropertyFilters,
        cells_per_degree: float,
        row_limit: int,
        cell_limit: int,
    ) -> list[GridCellRow]:
        geom = _geom()
        lat = func.ST_Y(geom)
        lng = func.ST_X(geom)

        # Same id-ordered, capped window as find_within_bounds, keyed per cell.
        window = select(
            Property.id.label("id"),
            Property.price.label("price"),
            lat.label("lat"),
            lng.label("lng"),
            func.floor(lat * float(cells_per_degree)).label("lat_key"),
            func.floor(lng * float(cells_per_degree)).label("lng_key"),
        )
        window = _active(window).where(func.ST_Covers(_envelope(bounds), geom))
        window = _apply_filters(window, filters)
        keyed = window.order_by(Property.id.asc()).limit(int(row_limit)).subquery("keyed")

        cell_count = func.count().label("cell_count")
        stmt = (
            select(
                keyed.c.lat_key,
                keyed.c.lng_key,
                cell_count,
                func.min(keyed.c.price).label("min_price"),
                func.max(keyed.c.price).label("max_price"),
                func.sum(keyed.c.price).label("sum_price"),
                func.avg(keyed.c.lat).label("avg_lat"),
                func.avg(keyed.c.lng).label("avg_lng"),
                func.array_agg(aggregate_order_by(keyed.c.id, keyed.c.id.asc())).label(
                    "member_ids"
                ),
            )
            .group_by(keyed.c.lat_key, keyed.c.lng_key)
            .order_by(cell_count.desc(), keyed.c.lat_key.asc(), keyed.c.lng_key.asc())
            .limit(int(cell_limit))
        )

        rows = await self._session.execute(stmt)
        return [
            GridCellRow(
                lat_key=int(row.lat_key),
                lng_key=int(row.lng_key),
                count=int(row.cell_count),
                min_price=_decimal(row.min_price),
                max_price=_decimal(row.max_price),
                sum_price=_decimal(row.sum_price),
                avg_lat=float(row.avg_lat),
                avg_lng=float(row.avg_lng),
                member_ids=[int(i) for i in (row.member_ids or [])],
            )
            for row in rows.all()
        ]

    async def fetch_active(self, *, limit: int) -> list[PropertyRow]:
        stmt = _active(
            select(
                Property.id,
                Property.coordinates,
                Property.price,
                Property.region_id,
                Property.property_class_id,
            )
        )
        stmt = stmt.order_by(Property.id.asc()).limit(int(limit))

        rows = await self._session.execute(stmt)
        return [
            PropertyRow(
                id=int(row.id),
                coordinates=row.coordinates,
                price=_decimal(row.price),
                region_id=row.region_id,
                property_class_id=row.property_class_id,
            )
            for row in rows.all()
        ]

    async def spatial_backend_version(self) -> str | None:
        try:
            version = await self._session.scalar(text("SELECT PostGIS_Version()"))
        except SQLAlchemyError as exc:
            structlog.get_logger(__name__).warning(
                "postgis_unavailable", error=exc.__class__.__name__
            )
            await self._session.rollback()
            return None
        return str(version) if version is not None else None
