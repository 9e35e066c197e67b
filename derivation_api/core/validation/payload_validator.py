"""Frontera de validación: payload sin tipar -> RawReading.

Es el único punto donde se aceptan datos de forma libre; todo lo que
viene después trabaja con RawReading.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ValidationError
from ..domain.reading import RawReading, utcnow

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (1,)
RAW_SUFFIX = "Raw"
MAX_ABS_RAW = 1e12


class RawReadingPayload(BaseModel):
    """Schema del payload de lectura cruda.

    Formato esperado:
    {
        "v": 1,
        "deviceId": "tank-01",
        "fields": {"level": 512, "flow": 3.5},
        "unit": "raw",
        "sensorType": "ultrasonic",
        "timestamp": "2026-01-31T08:00:00.123Z",
        "sequence": 12345
    }

    También acepta campos planos con sufijo Raw ("levelRaw": 512).
    """

    model_config = ConfigDict(populate_by_name=True)

    v: int = 1
    device_id: str = Field(..., alias="deviceId", min_length=1)
    fields: Dict[str, Union[StrictInt, StrictFloat]]
    unit: str = "raw"
    sensor_type: str = Field(default="unknown", alias="sensorType")
    timestamp: Optional[datetime] = None
    sequence: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def collect_flat_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        fields = data.get("fields") or {}
        if not isinstance(fields, dict):
            return data
        fields = dict(fields)
        for key in list(data):
            if key.endswith(RAW_SUFFIX) and len(key) > len(RAW_SUFFIX):
                fields.setdefault(key[: -len(RAW_SUFFIX)], data.pop(key))
        data["fields"] = fields
        return data

    @field_validator("v")
    @classmethod
    def validate_version(cls, v):
        if v not in SUPPORTED_VERSIONS:
            raise ValueError(f"Unsupported version: {v}")
        return v

    @field_validator("device_id")
    @classmethod
    def validate_device_id(cls, v):
        if not v.strip():
            raise ValueError("deviceId is required")
        return v.strip()

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v):
        if not v:
            raise ValueError("at least one raw field is required")
        for name, value in v.items():
            if not name.strip():
                raise ValueError("field names must be non-empty")
            # Rango primero: un entero JSON enorme no cabe en float (OverflowError)
            if abs(value) >= MAX_ABS_RAW:
                raise ValueError(f"field '{name}' out of range")
            if not math.isfinite(value):
                raise ValueError(f"field '{name}' is not finite")
        return v

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_raw_reading(self) -> RawReading:
        return RawReading(
            device_id=self.device_id,
            fields={k: float(val) for k, val in self.fields.items()},
            timestamp=self.timestamp or utcnow(),
            unit=self.unit,
            sensor_type=self.sensor_type,
            sequence=self.sequence,
        )


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    reading: Optional[RawReading] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def validate_raw_payload(
    data: Any,
    device_id_hint: Optional[str] = None,
) -> ValidationResult:
    """Valida un payload crudo y lo convierte a RawReading.

    Args:
        data: Payload parseado (dict)
        device_id_hint: deviceId a usar si el payload no trae uno (ej. del topic)

    Returns:
        ValidationResult con la lectura o el error
    """
    if not isinstance(data, Mapping):
        return ValidationResult(valid=False, error="Payload must be an object")

    warnings = []
    data = dict(data)

    if "deviceId" not in data and "device_id" not in data and device_id_hint:
        data["deviceId"] = device_id_hint
        warnings.append("deviceId taken from transport metadata")

    if data.get("timestamp") is None:
        warnings.append("timestamp missing, using receive time")

    try:
        payload = RawReadingPayload.model_validate(data)
    except PydanticValidationError as e:
        error = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        logger.warning("[VALIDATOR] Validation failed: %s", error)
        return ValidationResult(valid=False, error=error)

    return ValidationResult(valid=True, reading=payload.to_raw_reading(), warnings=warnings)


def check_raw_reading(raw: Any) -> None:
    """Valida la forma de una RawReading ya construida.

    Raises:
        ValidationError: si la lectura está incompleta o fuera de tipo
    """
    if not isinstance(raw, RawReading):
        raise ValidationError(f"Expected RawReading, got {type(raw).__name__}")

    device_id = raw.device_id
    if not isinstance(device_id, str) or not device_id.strip():
        raise ValidationError("Missing device identifier")
    if not raw.fields:
        raise ValidationError("Reading has no raw fields", device_id=device_id)

    for name, value in raw.fields.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(
                f"Field '{name}' must be numeric, got {type(value).__name__}",
                device_id=device_id,
            )
        if abs(value) >= MAX_ABS_RAW:
            raise ValidationError(f"Field '{name}' out of range", device_id=device_id)
        if not math.isfinite(value):
            raise ValidationError(f"Field '{name}' is not finite", device_id=device_id)

    if not isinstance(raw.timestamp, datetime):
        raise ValidationError("timestamp must be a datetime", device_id=device_id)
