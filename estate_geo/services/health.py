from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_geo.core.exceptions import InfrastructureError
from estate_geo.repositories.sqlalchemy import SqlAlchemyPropertyGeoRepository


class HealthService:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def ok(self) -> dict:
        await self._session.execute(text("SELECT 1"))
        return {"ok": True}

    async def readiness(self) -> dict:
        """Database round-trip plus the spatial backend, if any."""

        try:
            payload = await self.ok()
        except SQLAlchemyError as exc:
            raise InfrastructureError("database unavailable") from exc
        version = await SqlAlchemyPropertyGeoRepository(self._session).spatial_backend_version()
        payload["spatial_index"] = version is not None
        payload["postgis_version"] = version
        return payload
