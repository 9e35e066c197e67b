"""Calibration layer - Store y carga de calibraciones."""

from .loader import CalibrationFileWatcher, load_calibration_file, reload_from_file
from .store import CalibrationSnapshot, CalibrationStore

__all__ = [
    "CalibrationStore",
    "CalibrationSnapshot",
    "CalibrationFileWatcher",
    "load_calibration_file",
    "reload_from_file",
]
