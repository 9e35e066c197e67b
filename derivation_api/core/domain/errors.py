"""Taxonomía de errores del pipeline de derivación.

Ningún error de esta jerarquía es fatal para el proceso: el coordinador
los captura, los cuenta y sigue con la siguiente lectura.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base de todos los errores del pipeline."""


class ValidationError(PipelineError):
    """Lectura cruda malformada o incompleta."""

    def __init__(self, message: str, device_id: Optional[str] = None):
        super().__init__(message)
        self.device_id = device_id


class CalibrationMissing(PipelineError):
    """No hay registro de calibración para el dispositivo."""

    def __init__(self, device_id: str):
        super().__init__(f"No calibration record for device '{device_id}'")
        self.device_id = device_id


class CalibrationError(PipelineError):
    """Calibración inválida (ej. rango crudo de ancho cero).

    Indica un error de configuración que requiere atención del operador.
    """

    def __init__(self, message: str, device_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.device_id = device_id
        self.field = field


class SinkDeliveryError(PipelineError):
    """Timeout o rechazo de un sink tras agotar los reintentos."""

    def __init__(
        self,
        sink: str,
        message: str,
        attempts: int = 1,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(f"[{sink}] {message}")
        self.sink = sink
        self.attempts = attempts
        self.cause = cause
