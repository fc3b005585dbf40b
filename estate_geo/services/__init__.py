"""Geo query services: spatial stores, clustering and the query facade."""

from .cluster import FallbackClusterAggregator, IndexedClusterAggregator
from .geo_query import GeoQueryFacade, QueryStage, build_geo_query_facade
from .spatial_store import FallbackSpatialStore, IndexedSpatialStore

__all__ = [
    "FallbackClusterAggregator",
    "FallbackSpatialStore",
    "GeoQueryFacade",
    "IndexedClusterAggregator",
    "IndexedSpatialStore",
    "QueryStage",
    "build_geo_query_facade",
]
