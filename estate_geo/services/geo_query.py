"""Single entry point for geo queries: indexed attempt, in-memory fallback.

Per request::

    START -> TRY_INDEXED -> DONE
                         -> TRY_FALLBACK -> DONE
                                         -> FATAL

Validation errors are raised at START and never retried. The indexed attempt
is bounded by a timeout; timing out or losing the backend moves the request
to the fallback exactly once. There is no retry loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import structlog

from estate_geo.core.config import Settings, settings
from estate_geo.core.exceptions import FallbackExhausted, UpstreamUnavailable
from estate_geo.domain.value_objects import GeoBounds, GeoPoint, PropertyFilters, SpatialQuerySpec
from estate_geo.repositories.interfaces import ClusterCell, PropertyMatch
from estate_geo.services.cluster import (
    ClusterAggregator,
    FallbackClusterAggregator,
    build_aggregators,
    validate_zoom,
)
from estate_geo.services.spatial_store import (
    UPSTREAM_ERRORS,
    FallbackSpatialStore,
    SpatialStore,
    UnitOfWorkFactory,
    build_stores,
    raise_if_cancelled,
)
from estate_geo.utils.geo import ensure_no_wrap

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class QueryStage(str, Enum):
    START = "start"
    TRY_INDEXED = "try_indexed"
    TRY_FALLBACK = "try_fallback"
    DONE = "done"
    FATAL = "fatal"


class GeoQueryFacade:
    """Radius search, bounds search and clustering with silent failover.

    The facade holds only immutable strategy references; every request keeps
    its intermediate state local, so one instance serves concurrent requests.
    """

    def __init__(
        self,
        *,
        fallback_store: FallbackSpatialStore,
        fallback_clusters: FallbackClusterAggregator,
        indexed_store: SpatialStore | None = None,
        indexed_clusters: ClusterAggregator | None = None,
        indexed_timeout: float | None = None,
    ) -> None:
        self._fallback_store = fallback_store
        self._fallback_clusters = fallback_clusters
        self._indexed_store = indexed_store
        self._indexed_clusters = indexed_clusters
        self._indexed_timeout = indexed_timeout or settings.geo_indexed_timeout_seconds

    @classmethod
    def from_settings(
        cls,
        uow_factory: UnitOfWorkFactory,
        config: Settings = settings,
        *,
        spatial_index: bool | None = None,
    ) -> GeoQueryFacade:
        use_index = config.geo_spatial_index_enabled if spatial_index is None else spatial_index
        indexed_store, fallback_store = build_stores(uow_factory, config)
        indexed_clusters, fallback_clusters = build_aggregators(
            uow_factory, fallback_store, config
        )
        return cls(
            fallback_store=fallback_store,
            fallback_clusters=fallback_clusters,
            indexed_store=indexed_store if use_index else None,
            indexed_clusters=indexed_clusters if use_index else None,
            indexed_timeout=config.geo_indexed_timeout_seconds,
        )

    @property
    def uses_spatial_index(self) -> bool:
        return self._indexed_store is not None

    async def radius_search(
        self,
        center: GeoPoint,
        radius_km: float,
        filters: PropertyFilters | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[PropertyMatch]:
        spec = SpatialQuerySpec.radius(center, radius_km, filters)
        return await self._execute(
            "radius_search",
            self._store_call(self._indexed_store, spec, cancel),
            self._store_call(self._fallback_store, spec, cancel),
            timeout=timeout,
            cancel=cancel,
        )

    async def bounds_search(
        self,
        bounds: GeoBounds,
        filters: PropertyFilters | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[PropertyMatch]:
        spec = SpatialQuerySpec.within(ensure_no_wrap(bounds), filters)
        return await self._execute(
            "bounds_search",
            self._store_call(self._indexed_store, spec, cancel),
            self._store_call(self._fallback_store, spec, cancel),
            timeout=timeout,
            cancel=cancel,
        )

    async def cluster_for_view(
        self,
        bounds: GeoBounds,
        zoom: int,
        filters: PropertyFilters | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[ClusterCell]:
        ensure_no_wrap(bounds)
        validate_zoom(zoom)
        filters = filters or PropertyFilters()

        def _call(aggregator: ClusterAggregator | None):
            if aggregator is None:
                return None
            return lambda: aggregator.clusters(bounds, zoom, filters, cancel=cancel)

        return await self._execute(
            "cluster_for_view",
            _call(self._indexed_clusters),
            _call(self._fallback_clusters),
            timeout=timeout,
            cancel=cancel,
            zoom=zoom,
        )

    @staticmethod
    def _store_call(
        store: SpatialStore | None, spec: SpatialQuerySpec, cancel: asyncio.Event | None
    ) -> Callable[[], Awaitable[list[PropertyMatch]]] | None:
        if store is None:
            return None
        return lambda: store.query(spec, cancel=cancel)

    async def _execute(
        self,
        operation: str,
        indexed_call: Callable[[], Awaitable[list[T]]] | None,
        fallback_call: Callable[[], Awaitable[list[T]]],
        *,
        timeout: float | None,
        cancel: asyncio.Event | None,
        **fields: object,
    ) -> list[T]:
        log = logger.bind(operation=operation, **fields)
        stage = QueryStage.START
        log.debug("geo_query_stage", stage=stage.value)
        raise_if_cancelled(cancel)

        if indexed_call is not None:
            stage = QueryStage.TRY_INDEXED
            budget = timeout if timeout is not None else self._indexed_timeout
            try:
                result = await asyncio.wait_for(indexed_call(), timeout=budget)
            except asyncio.TimeoutError:
                log.warning(
                    "geo_indexed_failed", stage=stage.value, reason="timeout", timeout=budget
                )
            except UpstreamUnavailable as exc:
                log.warning(
                    "geo_indexed_failed", stage=stage.value, reason="unavailable", error=str(exc)
                )
            else:
                log.info("geo_query_done", path="indexed", returned=len(result))
                return result

        stage = QueryStage.TRY_FALLBACK
        log.debug("geo_query_stage", stage=stage.value)
        raise_if_cancelled(cancel)
        try:
            result = await fallback_call()
        except (UpstreamUnavailable, *UPSTREAM_ERRORS) as exc:
            stage = QueryStage.FATAL
            log.error("geo_fallback_failed", stage=stage.value, error=str(exc))
            raise FallbackExhausted(f"{operation}: no query path available") from exc

        log.info("geo_query_done", path="fallback", returned=len(result))
        return result


async def build_geo_query_facade(
    uow_factory: UnitOfWorkFactory, config: Settings = settings
) -> GeoQueryFacade:
    """Probe the spatial backend once and wire the matching strategy pair."""

    use_index = config.geo_spatial_index_enabled
    version: str | None = None
    if use_index:
        try:
            async with uow_factory() as uow:
                version = await uow.properties.spatial_backend_version()
        except UPSTREAM_ERRORS as exc:
            logger.warning("postgis_probe_failed", error=str(exc))
        use_index = version is not None

    logger.info("geo_query_facade_ready", spatial_index=use_index, postgis_version=version)
    return GeoQueryFacade.from_settings(uow_factory, config, spatial_index=use_index)
