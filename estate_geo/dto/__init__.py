"""Public DTO exports for FastAPI response models."""

from .geo import ClusterCellDTO, ClusterListDTO, PropertyMatchDTO, PropertyMatchListDTO

__all__ = [
    "ClusterCellDTO",
    "ClusterListDTO",
    "PropertyMatchDTO",
    "PropertyMatchListDTO",
]
