from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from estate_geo.models.base import Base


class Property(Base):
    """Listing row owned by the sync jobs; the geo services only read it."""

    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(255), unique=True, nullable=True)
    region_id = Column(Integer, nullable=True, index=True)
    property_class_id = Column(Integer, nullable=True, index=True)
    title = Column(String(500), nullable=False)
    price = Column(Numeric(14, 2), nullable=False, index=True)
    address = Column(String(500), nullable=True)
    # WKT "POINT(lng lat)" for synced rows, JSON {"lat", "lng"} for legacy imports
    coordinates = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
