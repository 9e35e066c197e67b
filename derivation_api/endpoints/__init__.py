"""Módulo de endpoints HTTP.

Contiene todos los endpoints de la API organizados por función.
"""

from .calibrations import router as calibrations_router
from .health import router as health_router
from .ingest import router as ingest_router
from .readings import router as readings_router

__all__ = [
    "health_router",
    "readings_router",
    "calibrations_router",
    "ingest_router",
]
