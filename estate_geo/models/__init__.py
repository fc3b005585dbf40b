# estate_geo/models/__init__.py
from .base import Base
from .property import Property

__all__ = ["Base", "Property"]
