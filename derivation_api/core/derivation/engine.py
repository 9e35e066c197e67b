"""Motor de derivación: lectura cruda + calibración -> lectura derivada.

Funciones puras, sin I/O ni estado. Llamar `derive` dos veces con las
mismas entradas produce los mismos campos (salvo `processed_at`), lo que
permite reprocesar históricos con la calibración de la época.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional, Tuple

from ..domain.calibration import CalibrationRecord, FieldMapping, Thresholds
from ..domain.errors import CalibrationError
from ..domain.reading import DerivedReading, LevelStatus, RawReading, utcnow

# Campos con semántica de negocio
LEVEL_FIELD = "level"
FLOW_FIELD = "flow"


def linear_map(raw_value: float, mapping: FieldMapping) -> Tuple[float, bool]:
    """Convierte un valor crudo a unidades físicas.

    physical = ((raw - raw_min) / (raw_max - raw_min)) * (phys_max - phys_min) + phys_min + offset

    El resultado nunca se extrapola: se recorta a [phys_min, phys_max].

    Returns:
        (valor físico, True si hubo recorte)

    Raises:
        CalibrationError: si el rango crudo es degenerado
    """
    raw_span = mapping.raw_max - mapping.raw_min
    if raw_span == 0:
        raise CalibrationError(
            f"Degenerate raw range: raw_min == raw_max == {mapping.raw_min}"
        )
    if raw_span < 0:
        raise CalibrationError(
            f"Inverted raw range: raw_min={mapping.raw_min} raw_max={mapping.raw_max}"
        )

    ratio = (raw_value - mapping.raw_min) / raw_span
    physical = ratio * (mapping.phys_max - mapping.phys_min) + mapping.phys_min + mapping.offset
    if not math.isfinite(physical):
        raise CalibrationError(f"Non-finite physical value for raw={raw_value}")

    if physical < mapping.phys_min:
        return mapping.phys_min, True
    if physical > mapping.phys_max:
        return mapping.phys_max, True
    return physical, False


def classify_level(level: Optional[float], thresholds: Optional[Thresholds]) -> LevelStatus:
    """Clasifica el nivel. El valor frontera pertenece a la banda superior.

    critical si level < critical, low si critical <= level < low, normal si no.
    """
    if level is None or thresholds is None:
        return LevelStatus.UNKNOWN
    if level < thresholds.critical:
        return LevelStatus.CRITICAL
    if level < thresholds.low:
        return LevelStatus.LOW
    return LevelStatus.NORMAL


def remaining_volume(level: Optional[float], capacity: Optional[float]) -> Optional[float]:
    """Volumen restante a partir del nivel en %."""
    if level is None or capacity is None:
        return None
    return (level / 100.0) * capacity


def time_to_empty(volume: Optional[float], flow_rate: Optional[float]) -> Optional[float]:
    """Tiempo hasta vaciado (unidades de volumen / unidades de caudal).

    None cuando el caudal es <= 0: el tanque no se vacía.
    """
    if volume is None or flow_rate is None or flow_rate <= 0:
        return None
    return volume / flow_rate


def derive(
    raw: RawReading,
    cal: CalibrationRecord,
    processed_at: Optional[datetime] = None,
) -> DerivedReading:
    """Aplica calibración y reglas de negocio a una lectura cruda.

    Los campos sin mapeo en la calibración no se convierten: se listan
    en `unmapped_fields`.

    Raises:
        CalibrationError: si algún mapeo es degenerado
    """
    values = {}
    clamped = []
    unmapped = []

    for name in sorted(raw.fields):
        mapping = cal.mappings.get(name)
        if mapping is None:
            unmapped.append(name)
            continue
        try:
            physical, was_clamped = linear_map(raw.fields[name], mapping)
        except CalibrationError as e:
            raise CalibrationError(str(e), device_id=cal.device_id, field=name) from e
        values[name] = physical
        if was_clamped:
            clamped.append(name)

    # Métricas secundarias: solo después de los valores primarios
    level = values.get(LEVEL_FIELD)
    volume = remaining_volume(level, cal.capacity)

    return DerivedReading(
        device_id=raw.device_id,
        values=values,
        status=classify_level(level, cal.thresholds),
        source_timestamp=raw.timestamp,
        processed_at=processed_at or utcnow(),
        calibration_version=cal.version,
        remaining_volume=volume,
        time_to_empty=time_to_empty(volume, values.get(FLOW_FIELD)),
        clamped_fields=tuple(clamped),
        unmapped_fields=tuple(unmapped),
        category=cal.category,
        sensor_type=raw.sensor_type,
        raw=raw,
    )
