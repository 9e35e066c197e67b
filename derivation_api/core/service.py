"""Servicio de derivación - ensambla y arranca el pipeline.

Componentes:
- CalibrationStore (+ watcher del archivo de calibraciones)
- Sinks: SQLAlchemy o memoria (persistencia), Redis o memoria (live)
- SinkDispatcher + IngestionCoordinator
- MQTTClient + MessageHandler (opcional)
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from common.config import Settings, get_settings
from common.db import get_engine

from .calibration.loader import CalibrationFileWatcher
from .calibration.store import CalibrationStore
from .domain.sinks import LiveUpdateSink, PersistenceSink
from .monitoring.health import HealthChecker
from .pipeline.coordinator import DEFAULT_CALIBRATION_ID, IngestionCoordinator, MissingCalibrationPolicy
from .pipeline.device_queue import DeviceQueueConfig
from .pipeline.dispatcher import SinkDispatcher
from .pipeline.retry import RetryConfig
from .sinks.memory import InMemorySink
from .sinks.redis_sink import RedisConnection, RedisStreamSink
from .sinks.sqlalchemy_sink import SqlAlchemySink, ensure_schema
from .transport.message_handler import MessageHandler
from .transport.mqtt_client import MQTTClient

logger = logging.getLogger(__name__)


class DerivationService:
    """Pipeline completo con su ciclo de vida."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self.store = CalibrationStore()
        self.coordinator: Optional[IngestionCoordinator] = None
        self.handler: Optional[MessageHandler] = None
        self.mqtt: Optional[MQTTClient] = None
        self.health: Optional[HealthChecker] = None
        self._watcher: Optional[CalibrationFileWatcher] = None
        self._redis: Optional[RedisConnection] = None
        self._running = False

    def start(self) -> bool:
        """Inicia el servicio. El transporte MQTT es opcional.

        Un backend caído (BD, Redis, broker) no impide el arranque: el sink
        correspondiente queda degradado. Si algo falla igualmente, lo ya
        arrancado se detiene antes de propagar el error.
        """
        try:
            self._start()
        except Exception:
            logger.exception("[SERVICE] Startup failed")
            self.stop()
            raise
        self._running = True
        logger.info("[SERVICE] Started successfully")
        return True

    def _start(self) -> None:
        s = self._settings
        policy = MissingCalibrationPolicy(s.missing_calibration_policy)

        # 1. Calibraciones
        if s.calibration_file:
            self._watcher = CalibrationFileWatcher(
                s.calibration_file, self.store, interval_seconds=s.calibration_reload_seconds,
            )
            self._watcher.start()

        if policy == MissingCalibrationPolicy.DEFAULT and DEFAULT_CALIBRATION_ID not in self.store:
            # Se resuelve en cada lectura: puede llegar con una recarga posterior
            logger.warning(
                "[SERVICE] MISSING_CALIBRATION_POLICY=default but no '%s' record loaded yet; "
                "uncalibrated devices are dropped until it exists",
                DEFAULT_CALIBRATION_ID,
            )

        # 2. Sinks + coordinador
        dispatcher = SinkDispatcher(
            persistence=self._build_persistence(),
            live=self._build_live(),
            retry=RetryConfig.from_env(),
            max_workers=s.pipeline_workers,
        )
        self.coordinator = IngestionCoordinator(
            self.store,
            dispatcher,
            queue_config=DeviceQueueConfig.from_env(),
            num_workers=s.pipeline_workers,
            missing_policy=policy,
        )
        self.coordinator.start()
        self.handler = MessageHandler(self.coordinator)

        # 3. MQTT (opcional)
        if s.mqtt_enabled:
            self.mqtt = MQTTClient.from_settings(s)
            self.mqtt.set_message_handler(self.handler.handle)
            if not self.mqtt.connect():
                logger.error("[SERVICE] MQTT connection failed, HTTP ingestion only")

        self.health = HealthChecker(self.coordinator, self.mqtt)

    def stop(self) -> None:
        """Detiene el servicio drenando lo pendiente."""
        self._running = False
        if self.mqtt:
            self.mqtt.disconnect()
        if self._watcher:
            self._watcher.stop()
        if self.coordinator:
            self.coordinator.stop(drain=True)
        if self._redis:
            self._redis.disconnect()
        logger.info("[SERVICE] Stopped")

    def _build_persistence(self) -> PersistenceSink:
        engine = get_engine(self._settings)
        if engine is None:
            return InMemorySink(name="persistence")
        try:
            ensure_schema(engine)
        except SQLAlchemyError as e:
            # El sink reintenta crear el esquema en cada store hasta lograrlo
            logger.error("[SERVICE] Database unreachable at startup, persistence degraded: %s", type(e).__name__)
            return SqlAlchemySink(engine)
        return SqlAlchemySink(engine, schema_ready=True)

    def _build_live(self) -> LiveUpdateSink:
        s = self._settings
        if not s.redis_url:
            logger.info("[SERVICE] REDIS_URL not configured - live updates kept in memory")
            return InMemorySink(name="live")
        self._redis = RedisConnection(s.redis_url)
        self._redis.connect()
        return RedisStreamSink(self._redis, stream_name=s.redis_stream, max_len=s.redis_stream_maxlen)

    @property
    def is_running(self) -> bool:
        return self._running


# Singleton
_service: Optional[DerivationService] = None


def get_service() -> Optional[DerivationService]:
    """Obtiene el servicio singleton."""
    return _service


def start_service(settings: Optional[Settings] = None) -> DerivationService:
    """Inicia el servicio singleton."""
    global _service

    if _service is not None:
        return _service

    service = DerivationService(settings)
    service.start()
    _service = service
    return _service


def stop_service() -> None:
    """Detiene el servicio singleton."""
    global _service

    if _service is not None:
        _service.stop()
        _service = None
