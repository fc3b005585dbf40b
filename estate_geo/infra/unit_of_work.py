"""Unit of Work abstraction used by the geo services."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_geo.repositories.interfaces import PropertyGeoReadRepository
from estate_geo.repositories.sqlalchemy import SqlAlchemyPropertyGeoRepository


class UnitOfWork(Protocol, AbstractAsyncContextManager["UnitOfWork"]):
    """Defines the repository boundary exposed to services."""

    properties: PropertyGeoReadRepository


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Read-only Unit of Work backed by a SQLAlchemy async session.

    Geo queries never write; the session is rolled back on exit so a failed
    statement does not leave the pooled connection mid-transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.properties: PropertyGeoReadRepository

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        session = self._session_factory()
        self._session = session
        self.properties = SqlAlchemyPropertyGeoRepository(session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is None:
            return
        try:
            await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork session is not initialized. Use within context manager.")
        return self._session
