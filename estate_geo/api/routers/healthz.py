# estate_geo/api/routers/healthz.py
from fastapi import APIRouter

from estate_geo.schemas.common import OkResponse

router = APIRouter(prefix="/healthz", tags=["health"])


@router.get(
    "",
    response_model=OkResponse,
    summary="Liveness probe",
    description="Always 200 while the process is up (no database access)",
)
async def healthz():
    return {"ok": True}
