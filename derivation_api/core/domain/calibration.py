"""Registros de calibración por dispositivo.

Datos puros: mapeos lineales por campo, capacidad y umbrales de
clasificación. Se publican en el store como snapshots inmutables.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, Optional


@dataclass(frozen=True)
class FieldMapping:
    """Mapeo lineal rango crudo -> rango físico, más offset."""
    raw_min: float
    raw_max: float
    phys_min: float
    phys_max: float
    offset: float = 0.0
    unit: str = ""

    def problems(self) -> List[str]:
        errors = []
        for name in ("raw_min", "raw_max", "phys_min", "phys_max", "offset"):
            if not math.isfinite(getattr(self, name)):
                errors.append(f"{name} must be finite")
        if not self.raw_min < self.raw_max:
            errors.append(f"raw_min ({self.raw_min}) must be < raw_max ({self.raw_max})")
        if not self.phys_min < self.phys_max:
            errors.append(f"phys_min ({self.phys_min}) must be < phys_max ({self.phys_max})")
        return errors


@dataclass(frozen=True)
class Thresholds:
    """Umbrales ordenados: critical < low."""
    critical: float
    low: float

    def problems(self) -> List[str]:
        if not self.critical < self.low:
            return [f"critical ({self.critical}) must be < low ({self.low})"]
        return []


@dataclass(frozen=True)
class CalibrationRecord:
    """Configuración de calibración de un dispositivo.

    `version` lo asigna el CalibrationStore en cada upsert; 0 significa
    "no publicado todavía".
    """
    device_id: str
    mappings: Mapping[str, FieldMapping]
    capacity: Optional[float] = None
    thresholds: Optional[Thresholds] = None
    category: str = "generic"
    version: int = 0

    def __post_init__(self):
        object.__setattr__(self, "mappings", MappingProxyType(dict(self.mappings)))

    def problems(self) -> List[str]:
        """Lista las violaciones de invariantes (vacía si es válido)."""
        errors = []
        if not self.device_id or not self.device_id.strip():
            errors.append("device_id is required")
        for name, mapping in self.mappings.items():
            errors.extend(f"{name}: {p}" for p in mapping.problems())
        if self.capacity is not None and not (math.isfinite(self.capacity) and self.capacity > 0):
            errors.append(f"capacity must be > 0, got {self.capacity}")
        if self.thresholds is not None:
            errors.extend(self.thresholds.problems())
        return errors

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CalibrationRecord":
        """Construye un registro desde el formato JSON de configuración.

        Formato:
        {
            "deviceId": "tank-01",
            "category": "diesel",
            "capacity": 5000,
            "thresholds": {"critical": 15, "low": 30},
            "mappings": {
                "level": {"rawMin": 0, "rawMax": 1023, "physMin": 0, "physMax": 100}
            }
        }
        """
        device_id = data.get("deviceId", data.get("device_id"))
        mappings = {}
        for name, m in (data.get("mappings") or {}).items():
            mappings[name] = FieldMapping(
                raw_min=float(m.get("rawMin", m.get("raw_min"))),
                raw_max=float(m.get("rawMax", m.get("raw_max"))),
                phys_min=float(m.get("physMin", m.get("phys_min"))),
                phys_max=float(m.get("physMax", m.get("phys_max"))),
                offset=float(m.get("offset", 0.0)),
                unit=str(m.get("unit", "")),
            )

        thresholds = None
        th = data.get("thresholds")
        if th:
            thresholds = Thresholds(critical=float(th["critical"]), low=float(th["low"]))

        capacity = data.get("capacity")
        return cls(
            device_id=str(device_id) if device_id is not None else "",
            mappings=mappings,
            capacity=float(capacity) if capacity is not None else None,
            thresholds=thresholds,
            category=str(data.get("category", "generic")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "category": self.category,
            "capacity": self.capacity,
            "version": self.version,
            "thresholds": (
                {"critical": self.thresholds.critical, "low": self.thresholds.low}
                if self.thresholds else None
            ),
            "mappings": {
                name: {
                    "rawMin": m.raw_min,
                    "rawMax": m.raw_max,
                    "physMin": m.phys_min,
                    "physMax": m.phys_max,
                    "offset": m.offset,
                    "unit": m.unit,
                }
                for name, m in self.mappings.items()
            },
        }
