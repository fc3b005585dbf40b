"""Utilities to map service results into DTOs."""

from __future__ import annotations

from collections.abc import Iterable

from estate_geo.dto import ClusterCellDTO, ClusterListDTO, PropertyMatchDTO, PropertyMatchListDTO
from estate_geo.repositories.interfaces import ClusterCell, PropertyMatch


def map_match(match: PropertyMatch) -> PropertyMatchDTO:
    distance = match.distance_km
    return PropertyMatchDTO(
        id=int(match.id),
        distance_km=round(distance, 6) if distance is not None else None,
    )


def map_matches(matches: Iterable[PropertyMatch]) -> PropertyMatchListDTO:
    items = [map_match(m) for m in matches]
    return PropertyMatchListDTO(items=items, total=len(items))


def map_cluster_cell(cell: ClusterCell) -> ClusterCellDTO:
    return ClusterCellDTO(
        lat=cell.centroid.lat,
        lng=cell.centroid.lng,
        count=cell.count,
        min_price=float(cell.min_price),
        max_price=float(cell.max_price),
        avg_price=float(cell.avg_price),
        property_ids=list(cell.member_ids),
    )


def map_clusters(cells: Iterable[ClusterCell], *, zoom: int) -> ClusterListDTO:
    dtos = [map_cluster_cell(c) for c in cells]
    return ClusterListDTO(
        zoom=zoom,
        cells=dtos,
        total_properties=sum(c.count for c in dtos),
    )
