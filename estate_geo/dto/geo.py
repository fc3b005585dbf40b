"""DTOs for geo search and cluster responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PropertyMatchDTO(BaseModel):
    id: int = Field(description="Property ID")
    distance_km: float | None = Field(
        default=None, description="Great-circle distance from the query center (radius search only)"
    )

    model_config = ConfigDict(from_attributes=True)


class PropertyMatchListDTO(BaseModel):
    items: list[PropertyMatchDTO] = Field(description="Matching properties")
    total: int = Field(default=0, description="Number of returned items")


class ClusterCellDTO(BaseModel):
    lat: float = Field(description="Centroid latitude of the cell members")
    lng: float = Field(description="Centroid longitude of the cell members")
    count: int = Field(description="Number of properties in the cell")
    min_price: float = Field(description="Lowest price in the cell")
    max_price: float = Field(description="Highest price in the cell")
    avg_price: float = Field(description="Mean price, rounded to 2 decimals")
    property_ids: list[int] = Field(default_factory=list, description="Member property IDs")


class ClusterListDTO(BaseModel):
    zoom: int = Field(description="Zoom level the grid was computed for")
    cells: list[ClusterCellDTO] = Field(description="Occupied cells, densest first")
    total_properties: int = Field(default=0, description="Sum of counts over returned cells")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "zoom": 12,
                    "cells": [
                        {
                            "lat": 55.7512,
                            "lng": 37.6184,
                            "count": 2,
                            "min_price": 9500000.0,
                            "max_price": 12000000.0,
                            "avg_price": 10750000.0,
                            "property_ids": [3, 7],
                        }
                    ],
                    "total_properties": 2,
                }
            ]
        }
    }
