"""Validation layer - Validación de datos."""

from .payload_validator import (
    RawReadingPayload,
    ValidationResult,
    check_raw_reading,
    validate_raw_payload,
)

__all__ = ["RawReadingPayload", "ValidationResult", "validate_raw_payload", "check_raw_reading"]
