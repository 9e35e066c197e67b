"""Sink de persistencia en BD de series temporales vía SQLAlchemy.

Guarda el valor derivado junto con la lectura cruda original, de modo
que el histórico se pueda recalcular con otra calibración.
"""

from __future__ import annotations

import logging

from sqlalchemy import JSON, Column, DateTime, Float, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import SinkDeliveryError
from ..domain.reading import DerivedReading
from ..domain.sinks import PersistenceSink

logger = logging.getLogger(__name__)

metadata = MetaData()

derived_readings = Table(
    "derived_readings",
    metadata,
    Column("device_id", String(128), nullable=False, index=True),
    Column("source_timestamp", DateTime(timezone=True), nullable=False, index=True),
    Column("processed_at", DateTime(timezone=True), nullable=False),
    Column("status", String(16), nullable=False),
    Column("category", String(64)),
    Column("sensor_type", String(64)),
    Column("calibration_version", Integer, nullable=False),
    Column("physical_values", JSON, nullable=False),
    Column("remaining_volume", Float),
    Column("time_to_empty", Float),
    Column("clamped_fields", JSON),
    Column("raw_reading", JSON),
)


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Idempotente."""
    logger.info("[POSTGRES] Ensuring schema exists")
    metadata.create_all(engine)


class SqlAlchemySink(PersistenceSink):
    """Persiste lecturas derivadas en la tabla `derived_readings`.

    Uso:
        sink = SqlAlchemySink(engine)
        sink.store(derived)
    """

    def __init__(
        self,
        engine: Engine,
        preserve_raw: bool = True,
        name: str = "persistence",
        schema_ready: bool = False,
    ):
        self.name = name
        self._engine = engine
        self._preserve_raw = preserve_raw
        # False: la tabla se crea en el primer store que llegue a la BD
        self._schema_ready = schema_ready

    def store(self, reading: DerivedReading) -> None:
        row = {
            "device_id": reading.device_id,
            "source_timestamp": reading.source_timestamp,
            "processed_at": reading.processed_at,
            "status": reading.status.value,
            "category": reading.category,
            "sensor_type": reading.sensor_type,
            "calibration_version": reading.calibration_version,
            "physical_values": dict(reading.values),
            "remaining_volume": reading.remaining_volume,
            "time_to_empty": reading.time_to_empty,
            "clamped_fields": list(reading.clamped_fields),
            "raw_reading": reading.raw.to_dict() if (self._preserve_raw and reading.raw) else None,
        }
        try:
            if not self._schema_ready:
                ensure_schema(self._engine)
                self._schema_ready = True
            with self._engine.begin() as conn:
                conn.execute(derived_readings.insert(), row)
        except SQLAlchemyError as e:
            # No exponer connection string en logs
            raise SinkDeliveryError(self.name, f"insert failed: {type(e).__name__}", cause=e) from e

    def is_connected(self) -> bool:
        try:
            with self._engine.connect():
                return True
        except SQLAlchemyError:
            return False
