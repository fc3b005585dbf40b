from fastapi import APIRouter, Depends

from estate_geo.api.deps import get_health_service
from estate_geo.schemas.common import ReadyResponse
from estate_geo.services.health import HealthService

router = APIRouter(prefix="/readyz", tags=["health"])


@router.get(
    "",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description="Runs SELECT 1 and reports whether PostGIS is available",
)
async def readyz(svc: HealthService = Depends(get_health_service)):
    return await svc.readiness()
