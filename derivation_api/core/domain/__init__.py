"""Domain layer - Modelos y contratos."""

from .calibration import CalibrationRecord, FieldMapping, Thresholds
from .errors import (
    CalibrationError,
    CalibrationMissing,
    PipelineError,
    SinkDeliveryError,
    ValidationError,
)
from .reading import DerivedReading, IngestOutcome, LevelStatus, RawReading
from .sinks import LiveUpdateSink, PersistenceSink

__all__ = [
    "CalibrationRecord",
    "FieldMapping",
    "Thresholds",
    "PipelineError",
    "ValidationError",
    "CalibrationMissing",
    "CalibrationError",
    "SinkDeliveryError",
    "RawReading",
    "DerivedReading",
    "LevelStatus",
    "IngestOutcome",
    "PersistenceSink",
    "LiveUpdateSink",
]
