# estate_geo/schemas/common.py
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    detail: str = Field(description="Error message")

    model_config = {"json_schema_extra": {"examples": [{"detail": "Bad Request"}]}}


class OkResponse(BaseModel):
    ok: bool = Field(description="Always true when the service responds")

    model_config = {"json_schema_extra": {"examples": [{"ok": True}]}}


class ReadyResponse(OkResponse):
    spatial_index: bool = Field(description="Whether the PostGIS path is usable")
    postgis_version: str | None = Field(default=None, description="Reported PostGIS version")
