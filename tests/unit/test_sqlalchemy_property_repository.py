"""Unit tests for the SQLAlchemy/PostGIS property repository query builders."""

from __future__ import annotations

import re
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import ProgrammingError

from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters
from estate_geo.repositories.interfaces import GridCellRow, PropertyRow, SpatialRow
from estate_geo.repositories.sqlalchemy.property import (
    STORED_LAT_PATTERNS,
    STORED_LNG_PATTERNS,
    SqlAlchemyPropertyGeoRepository,
)
from estate_geo.utils.coordinates import try_decode
from tests.fakes import stored_point

pytestmark = pytest.mark.unit

BOUNDS = GeoBounds(north=56.0, south=55.5, east=38.0, west=37.2)


class _FakeResult:
    def __init__(self, rows: list[SimpleNamespace]) -> None:
        self._rows = rows

    def all(self) -> list[SimpleNamespace]:
        return self._rows


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_find_within_bounds_pushes_envelope_and_filters_down() -> None:
    session = AsyncMock()
    repo = SqlAlchemyPropertyGeoRepository(session)
    session.execute.return_value = _FakeResult(
        [SimpleNamespace(id=4, lat=55.75, lng=37.61, price=Decimal("12000000.00"))]
    )

    result = await repo.find_within_bounds(
        bounds=BOUNDS,
        filters=PropertyFilters(region_id=77, min_price=Decimal("1000")),
        limit=1000,
    )

    assert result == [SpatialRow(id=4, lat=55.75, lng=37.61, price=Decimal("12000000.00"))]

    stmt = session.execute.await_args.args[0]
    where_clauses = {str(clause) for clause in stmt._where_criteria}
    assert any("properties.is_active" in clause for clause in where_clauses)
    assert any("properties.region_id" in clause for clause in where_clauses)
    assert any("properties.price >=" in clause for clause in where_clauses)
    assert not any("property_class_id" in clause for clause in where_clauses)

    sql = _sql(stmt)
    assert "ST_Covers(ST_MakeEnvelope(" in sql
    assert "ST_MakePoint(" in sql
    assert "ST_GeomFromText" not in sql
    assert "ORDER BY properties.id ASC" in sql
    assert "LIMIT" in sql


@pytest.mark.asyncio
async def test_find_within_radius_orders_by_distance_then_id() -> None:
    session = AsyncMock()
    repo = SqlAlchemyPropertyGeoRepository(session)
    session.execute.return_value = _FakeResult(
        [SimpleNamespace(id=2, lat=55.76, lng=37.62, price=5000000, distance_km=0.4)]
    )

    result = await repo.find_within_radius(
        center=GeoPoint(lat=55.7558, lng=37.6176),
        radius_km=2.0,
        envelope=BOUNDS,
        filters=PropertyFilters(property_class_id=3, max_price=Decimal("9000000")),
        limit=500,
    )

    assert result == [SpatialRow(id=2, lat=55.76, lng=37.62, price=Decimal("5000000"))]

    stmt = session.execute.await_args.args[0]
    where_clauses = {str(clause) for clause in stmt._where_criteria}
    assert any("properties.property_class_id" in clause for clause in where_clauses)
    assert any("properties.price <=" in clause for clause in where_clauses)

    sql = _sql(stmt)
    assert "asin" in sql and "radians" in sql
    assert sql.index("ORDER BY") < sql.index("properties.id ASC")


@pytest.mark.asyncio
async def test_aggregate_grid_groups_by_floor_keys() -> None:
    session = AsyncMock()
    repo = SqlAlchemyPropertyGeoRepository(session)
    session.execute.return_value = _FakeResult(
        [
            SimpleNamespace(
                lat_key=5575,
                lng_key=3761,
                cell_count=2,
                min_price=Decimal("100.00"),
                max_price=Decimal("300.00"),
                sum_price=Decimal("400.00"),
                avg_lat=55.755,
                avg_lng=37.615,
                member_ids=[3, 9],
            )
        ]
    )

    result = await repo.aggregate_grid(
        bounds=BOUNDS,
        filters=PropertyFilters(),
        cells_per_degree=100.0,
        row_limit=1000,
        cell_limit=200,
    )

    assert result == [
        GridCellRow(
            lat_key=5575,
            lng_key=3761,
            count=2,
            min_price=Decimal("100.00"),
            max_price=Decimal("300.00"),
            sum_price=Decimal("400.00"),
            avg_lat=55.755,
            avg_lng=37.615,
            member_ids=[3, 9],
        )
    ]

    sql = _sql(session.execute.await_args.args[0])
    assert "floor(" in sql
    assert "GROUP BY keyed.lat_key, keyed.lng_key" in sql
    assert "array_agg(keyed.id ORDER BY keyed.id ASC)" in sql
    assert "ORDER BY cell_count DESC, keyed.lat_key ASC, keyed.lng_key ASC" in sql


@pytest.mark.asyncio
async def test_fetch_active_returns_raw_coordinates_in_id_order() -> None:
    session = AsyncMock()
    repo = SqlAlchemyPropertyGeoRepository(session)
    session.execute.return_value = _FakeResult(
        [
            SimpleNamespace(
                id=1,
                coordinates="POINT(37.6 55.7)",
                price=None,
                region_id=None,
                property_class_id=2,
            )
        ]
    )

    result = await repo.fetch_active(limit=2000)

    assert result == [
        PropertyRow(
            id=1,
            coordinates="POINT(37.6 55.7)",
            price=Decimal(0),
            region_id=None,
            property_class_id=2,
        )
    ]
    sql = _sql(session.execute.await_args.args[0])
    assert "ST_" not in sql
    assert "ORDER BY properties.id ASC" in sql


@pytest.mark.asyncio
async def test_spatial_backend_version_reports_postgis() -> None:
    session = AsyncMock()
    session.scalar.return_value = "3.4 USE_GEOS=1 USE_PROJ=1"
    repo = SqlAlchemyPropertyGeoRepository(session)

    assert await repo.spatial_backend_version() == "3.4 USE_GEOS=1 USE_PROJ=1"


@pytest.mark.asyncio
async def test_spatial_backend_version_is_none_without_postgis() -> None:
    session = AsyncMock()
    session.scalar.side_effect = ProgrammingError(
        "SELECT PostGIS_Version()", {}, Exception("function postgis_version() does not exist")
    )
    repo = SqlAlchemyPropertyGeoRepository(session)

    assert await repo.spatial_backend_version() is None
    session.rollback.assert_awaited_once()


@pytest.mark.parametrize(
    "raw",
    [
        "POINT(37.6176 55.7558)",
        "srid=4326; point( -179.99999999999997 1e-12 )",
        "SRID=3857;POINT(37.6176 55.7558)",
        '{"lat": 55.7558, "lng": 37.6176}',
        '{"lng": -0.5, "lat": 51.5, "source": "import"}',
        '{"lat": "55.7", "lng": 37.6}',
        "55.7558,37.6176",
        " -33.86 , 151.2 ",
        "55.7558;37.6176",
        "POINT(37.6176)",
        "POINT(200 10)",
        "not-a-point",
        "",
    ],
)
def test_stored_coordinate_patterns_read_what_the_codec_reads(raw) -> None:
    expected = try_decode(raw)
    assert stored_point(raw) == expected
    if expected is not None:
        assert any(re.search(p, raw) for p in STORED_LAT_PATTERNS)
        assert any(re.search(p, raw) for p in STORED_LNG_PATTERNS)
