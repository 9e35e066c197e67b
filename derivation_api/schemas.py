from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .core.domain.calibration import CalibrationRecord, FieldMapping, Thresholds
from .core.domain.reading import DerivedReading, LevelStatus


class FieldMappingIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    raw_min: float = Field(..., alias="rawMin")
    raw_max: float = Field(..., alias="rawMax")
    phys_min: float = Field(..., alias="physMin")
    phys_max: float = Field(..., alias="physMax")
    offset: float = 0.0
    unit: str = ""


class ThresholdsIn(BaseModel):
    critical: float
    low: float


class CalibrationIn(BaseModel):
    mappings: Dict[str, FieldMappingIn] = Field(default_factory=dict)
    capacity: Optional[float] = None
    thresholds: Optional[ThresholdsIn] = None
    category: str = "generic"

    def to_record(self, device_id: str) -> CalibrationRecord:
        return CalibrationRecord(
            device_id=device_id,
            mappings={
                name: FieldMapping(
                    raw_min=m.raw_min,
                    raw_max=m.raw_max,
                    phys_min=m.phys_min,
                    phys_max=m.phys_max,
                    offset=m.offset,
                    unit=m.unit,
                )
                for name, m in self.mappings.items()
            },
            capacity=self.capacity,
            thresholds=(
                Thresholds(critical=self.thresholds.critical, low=self.thresholds.low)
                if self.thresholds else None
            ),
            category=self.category,
        )


class CalibrationOut(BaseModel):
    device_id: str
    version: int
    category: str
    capacity: Optional[float] = None
    thresholds: Optional[ThresholdsIn] = None
    mappings: Dict[str, FieldMappingIn] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: CalibrationRecord) -> "CalibrationOut":
        return cls(
            device_id=record.device_id,
            version=record.version,
            category=record.category,
            capacity=record.capacity,
            thresholds=(
                ThresholdsIn(critical=record.thresholds.critical, low=record.thresholds.low)
                if record.thresholds else None
            ),
            mappings={
                name: FieldMappingIn(
                    raw_min=m.raw_min,
                    raw_max=m.raw_max,
                    phys_min=m.phys_min,
                    phys_max=m.phys_max,
                    offset=m.offset,
                    unit=m.unit,
                )
                for name, m in record.mappings.items()
            },
        )


class DerivedReadingOut(BaseModel):
    device_id: str
    values: Dict[str, float]
    status: LevelStatus
    remaining_volume: Optional[float] = None
    time_to_empty: Optional[float] = None
    clamped_fields: List[str] = Field(default_factory=list)
    unmapped_fields: List[str] = Field(default_factory=list)
    category: str
    sensor_type: str
    source_timestamp: datetime
    processed_at: datetime
    calibration_version: int

    @classmethod
    def from_reading(cls, reading: DerivedReading) -> "DerivedReadingOut":
        return cls(
            device_id=reading.device_id,
            values=dict(reading.values),
            status=reading.status,
            remaining_volume=reading.remaining_volume,
            time_to_empty=reading.time_to_empty,
            clamped_fields=list(reading.clamped_fields),
            unmapped_fields=list(reading.unmapped_fields),
            category=reading.category,
            sensor_type=reading.sensor_type,
            source_timestamp=reading.source_timestamp,
            processed_at=reading.processed_at,
            calibration_version=reading.calibration_version,
        )


class IngestResult(BaseModel):
    accepted: bool
    device_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
