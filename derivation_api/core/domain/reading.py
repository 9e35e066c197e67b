"""Modelos de dominio para lecturas crudas y derivadas."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LevelStatus(str, Enum):
    """Clasificación de nivel según umbrales ordenados."""
    CRITICAL = "critical"
    LOW = "low"
    NORMAL = "normal"
    UNKNOWN = "unknown"


class IngestOutcome(str, Enum):
    """Resultado final de una lectura en el coordinador."""
    DISPATCHED = "dispatched"
    DELIVERY_FAILED = "delivery_failed"
    DELIVERY_DEFERRED = "delivery_deferred"
    DROPPED_VALIDATION = "dropped_validation"
    DROPPED_MISSING_CALIBRATION = "dropped_missing_calibration"
    DROPPED_CALIBRATION_ERROR = "dropped_calibration_error"
    DROPPED_OVERFLOW = "dropped_overflow"


@dataclass(frozen=True)
class RawReading:
    """Muestra cruda de un instrumento.

    Inmutable: se crea en la frontera de transporte y la consume
    exactamente una vez el coordinador.
    """
    device_id: str
    fields: Mapping[str, float]
    timestamp: datetime
    unit: str = "raw"
    sensor_type: str = "unknown"
    sequence: Optional[int] = None
    received_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "fields": dict(self.fields),
            "unit": self.unit,
            "sensor_type": self.sensor_type,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }


@dataclass(frozen=True)
class DerivedReading:
    """Lectura derivada: valores físicos + clasificación + métricas secundarias.

    Traza a exactamente una RawReading y a la versión de calibración
    vigente al procesarla. Nunca se muta aguas abajo.
    """
    device_id: str
    values: Mapping[str, float]
    status: LevelStatus
    source_timestamp: datetime
    processed_at: datetime
    calibration_version: int
    remaining_volume: Optional[float] = None
    time_to_empty: Optional[float] = None  # None = indefinido (caudal <= 0)
    clamped_fields: Tuple[str, ...] = ()
    unmapped_fields: Tuple[str, ...] = ()
    category: str = "generic"
    sensor_type: str = "unknown"
    raw: Optional[RawReading] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def clamped(self) -> bool:
        return bool(self.clamped_fields)

    def to_dict(self, include_processed_at: bool = True) -> dict[str, Any]:
        data = {
            "device_id": self.device_id,
            "values": dict(self.values),
            "status": self.status.value,
            "remaining_volume": self.remaining_volume,
            "time_to_empty": self.time_to_empty,
            "clamped_fields": list(self.clamped_fields),
            "unmapped_fields": list(self.unmapped_fields),
            "category": self.category,
            "sensor_type": self.sensor_type,
            "source_timestamp": self.source_timestamp.isoformat(),
            "calibration_version": self.calibration_version,
        }
        if include_processed_at:
            data["processed_at"] = self.processed_at.isoformat()
        return data
