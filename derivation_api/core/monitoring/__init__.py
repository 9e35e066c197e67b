"""Monitoring layer - Métricas y observabilidad."""

from .stats import Stats

__all__ = ["Stats"]

# HealthChecker se importa desde .health: depende del pipeline y del transporte
