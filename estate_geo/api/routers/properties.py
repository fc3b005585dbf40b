"""/properties map routes; thin wrappers over GeoQueryFacade."""

import asyncio

from fastapi import APIRouter, Depends, Query

from estate_geo.api.deps import (
    get_geo_query_facade,
    get_property_filters,
    get_query_cancel,
    get_view_bounds,
)
from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters
from estate_geo.dto import ClusterListDTO, PropertyMatchListDTO
from estate_geo.dto.mappers import map_clusters, map_matches
from estate_geo.schemas.common import ErrorResponse
from estate_geo.services.cluster import MAX_ZOOM, MIN_ZOOM
from estate_geo.services.geo_query import GeoQueryFacade
from estate_geo.utils.coordinates import decode

router = APIRouter(prefix="/properties", tags=["properties"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "invalid coordinates or bounds"},
    422: {"model": ErrorResponse, "description": "validation error"},
    499: {"model": ErrorResponse, "description": "client closed the request"},
    503: {"model": ErrorResponse, "description": "no query path available"},
}


@router.get(
    "/nearby",
    response_model=PropertyMatchListDTO,
    summary="Properties within a radius",
    description=(
        "Active properties within `radius_km` of the center, ordered by great-circle\n"
        "distance ascending, then id ascending. The center is given either as\n"
        "`lat`/`lng` or as `point` (`lat,lng`, WKT `POINT(lng lat)` or JSON)."
    ),
    responses=_ERRORS,
)
async def properties_nearby(
    lat: float | None = Query(None, ge=-90.0, le=90.0, description="Center latitude"),
    lng: float | None = Query(None, ge=-180.0, le=180.0, description="Center longitude"),
    point: str | None = Query(None, description="Center in any stored coordinate encoding"),
    radius_km: float = Query(3.0, ge=0.0, le=100.0, description="Search radius (km)"),
    filters: PropertyFilters = Depends(get_property_filters),
    facade: GeoQueryFacade = Depends(get_geo_query_facade),
    cancel: asyncio.Event = Depends(get_query_cancel),
):
    if point is not None:
        center = decode(point)
    else:
        center = GeoPoint(lat=lat, lng=lng)
    matches = await facade.radius_search(center, radius_km, filters, cancel=cancel)
    return map_matches(matches)


@router.get(
    "/in-bounds",
    response_model=PropertyMatchListDTO,
    summary="Properties inside the map viewport",
    description="Edges are inclusive. Results are ordered by id ascending.",
    responses=_ERRORS,
)
async def properties_in_bounds(
    bounds: GeoBounds = Depends(get_view_bounds),
    filters: PropertyFilters = Depends(get_property_filters),
    facade: GeoQueryFacade = Depends(get_geo_query_facade),
    cancel: asyncio.Event = Depends(get_query_cancel),
):
    matches = await facade.bounds_search(bounds, filters, cancel=cancel)
    return map_matches(matches)


@router.get(
    "/clusters",
    response_model=ClusterListDTO,
    summary="Grid clusters for map markers",
    description=(
        "Groups the properties inside the viewport into a zoom-dependent grid.\n"
        "Cells are ordered by count descending, then by grid position."
    ),
    responses=_ERRORS,
)
async def properties_clusters(
    zoom: int = Query(..., ge=MIN_ZOOM, le=MAX_ZOOM, description="Map zoom level"),
    bounds: GeoBounds = Depends(get_view_bounds),
    filters: PropertyFilters = Depends(get_property_filters),
    facade: GeoQueryFacade = Depends(get_geo_query_facade),
    cancel: asyncio.Event = Depends(get_query_cancel),
):
    cells = await facade.cluster_for_view(bounds, zoom, filters, cancel=cancel)
    return map_clusters(cells, zoom=zoom)
