import os
from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.cors import CORSMiddleware

from estate_geo import db
from estate_geo.api import errors
from estate_geo.api.deps import uow_factory
from estate_geo.api.routers.healthz import router as healthz_router
from estate_geo.api.routers.properties import router as properties_router
from estate_geo.api.routers.readyz import router as readyz_router
from estate_geo.logging import setup_logging
from estate_geo.middleware.request_id import request_id_middleware
from estate_geo.services.geo_query import build_geo_query_facade


def _traces_rate() -> float:
    # clamp to [0.0, 0.2]
    try:
        rate_raw = float(os.getenv("SENTRY_TRACES_RATE", "0"))
    except ValueError:
        rate_raw = 0.0
    return max(0.0, min(0.2, rate_raw))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One PostGIS probe per process; requests reuse the chosen strategy pair
    app.state.geo_query = await build_geo_query_facade(uow_factory)
    yield
    await db.dispose_engine()


def create_app() -> FastAPI:
    setup_logging()

    dsn = os.getenv("SENTRY_DSN")
    env = os.getenv("APP_ENV", "dev")
    if dsn:
        sentry_sdk.init(
            dsn=dsn,
            environment=env,
            release=os.getenv("RELEASE"),
            integrations=[StarletteIntegration()],
            traces_sample_rate=_traces_rate(),
            send_default_pii=False,
        )

    app = FastAPI(title="Estate Geo", lifespan=lifespan)
    app.middleware("http")(request_id_middleware)

    # CORS from ALLOW_ORIGINS env (comma-separated)
    allow_origins = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "").split(",") if o.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["GET", "OPTIONS", "HEAD"],
            allow_headers=["*"],
        )

    errors.install(app)
    app.include_router(properties_router)
    app.include_router(healthz_router)
    app.include_router(readyz_router)

    structlog.get_logger(__name__).info("app_startup", env=env)
    return app


app = create_app()
