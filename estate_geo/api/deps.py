"""API dependency helpers and service providers."""

import asyncio
from collections.abc import AsyncIterator
from decimal import Decimal

import structlog
from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from estate_geo.db import SessionLocal, get_async_session
from estate_geo.domain.value_objects import GeoBounds, PropertyFilters
from estate_geo.infra.unit_of_work import SqlAlchemyUnitOfWork
from estate_geo.services.geo_query import GeoQueryFacade
from estate_geo.services.health import HealthService

__all__ = [
    "uow_factory",
    "get_geo_query_facade",
    "get_property_filters",
    "get_view_bounds",
    "get_query_cancel",
    "get_health_service",
]

DISCONNECT_POLL_SECONDS = 0.05

logger = structlog.get_logger(__name__)


def uow_factory() -> SqlAlchemyUnitOfWork:
    return SqlAlchemyUnitOfWork(SessionLocal)


def get_geo_query_facade(request: Request) -> GeoQueryFacade:
    """Facade built at startup; falls back to a settings-only build (no probe)."""

    facade = getattr(request.app.state, "geo_query", None)
    if facade is None:
        facade = GeoQueryFacade.from_settings(uow_factory)
        request.app.state.geo_query = facade
    return facade


def get_property_filters(
    region_id: int | None = Query(None, ge=1, description="Region ID"),
    property_class_id: int | None = Query(None, ge=1, description="Property class ID"),
    min_price: Decimal | None = Query(None, ge=0, description="Lower price bound (inclusive)"),
    max_price: Decimal | None = Query(None, ge=0, description="Upper price bound (inclusive)"),
) -> PropertyFilters:
    return PropertyFilters(
        region_id=region_id,
        property_class_id=property_class_id,
        min_price=min_price,
        max_price=max_price,
    )


def get_view_bounds(
    north: float = Query(..., ge=-90.0, le=90.0, description="North edge latitude"),
    south: float = Query(..., ge=-90.0, le=90.0, description="South edge latitude"),
    east: float = Query(..., ge=-180.0, le=180.0, description="East edge longitude"),
    west: float = Query(..., ge=-180.0, le=180.0, description="West edge longitude"),
) -> GeoBounds:
    return GeoBounds(north=north, south=south, east=east, west=west)


async def get_query_cancel(request: Request) -> AsyncIterator[asyncio.Event]:
    """Event set once the client disconnects; the fallback scan stops at its next batch."""

    cancel = asyncio.Event()

    async def _watch() -> None:
        while not cancel.is_set():
            if await request.is_disconnected():
                logger.info("client_disconnected", path=request.url.path)
                cancel.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_SECONDS)

    watcher = asyncio.create_task(_watch())
    try:
        yield cancel
    finally:
        watcher.cancel()


def get_health_service(
    session: AsyncSession = Depends(get_async_session),
) -> HealthService:
    return HealthService(session)
