# estate_geo/db.py
from __future__ import annotations

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from estate_geo.core.config import settings

DATABASE_URL = settings.database_url

engine: AsyncEngine
SessionLocal: async_sessionmaker[AsyncSession]


def _apply_asyncpg_scheme(database_url: str) -> str:
    for prefix in ("postgresql+psycopg://", "postgresql+psycopg2://", "postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return database_url.replace(prefix, "postgresql+asyncpg://", 1)
    return database_url


def _create_engine(database_url: str) -> AsyncEngine:
    url = make_url(database_url)
    connect_args = {}

    if url.get_backend_name() == "postgresql" and url.get_driver_name() == "asyncpg":
        query = dict(url.query)
        # asyncpg takes ssl=<mode> instead of libpq's sslmode
        if "sslmode" in query:
            connect_args["ssl"] = query.pop("sslmode")
        # not supported by asyncpg
        query.pop("channel_binding", None)
        url = url._replace(query=query)

    return create_async_engine(
        url,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def configure_engine(database_url: str | None = None) -> None:
    """Configure the process-wide engine and session factory."""

    global engine, SessionLocal, DATABASE_URL

    DATABASE_URL = database_url or settings.database_url
    engine = _create_engine(_apply_asyncpg_scheme(DATABASE_URL))
    SessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_async_session() -> AsyncSession:
    async with SessionLocal() as session:
        yield session


async def dispose_engine() -> None:
    await engine.dispose()


configure_engine()
