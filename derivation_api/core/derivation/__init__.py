"""Derivation layer - Conversión a unidades físicas y reglas de negocio."""

from .engine import classify_level, derive, linear_map, remaining_volume, time_to_empty

__all__ = ["derive", "linear_map", "classify_level", "remaining_volume", "time_to_empty"]
