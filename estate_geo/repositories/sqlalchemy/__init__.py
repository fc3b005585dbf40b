"""SQLAlchemy implementations of repository interfaces."""

from .property import SqlAlchemyPropertyGeoRepository

__all__ = ["SqlAlchemyPropertyGeoRepository"]
