"""Sink de actualización en vivo: Redis Streams."""

from __future__ import annotations

import json
import logging
from typing import Optional

import redis

from ..domain.errors import SinkDeliveryError
from ..domain.reading import DerivedReading
from ..domain.sinks import LiveUpdateSink

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "readings:derived"
DEFAULT_MAX_LEN = 10000


class RedisConnection:
    """Gestiona la conexión a Redis."""

    def __init__(self, url: str = "redis://localhost:6379/0", timeout: float = 5.0):
        self._url = url
        self._timeout = timeout
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        """Conecta a Redis."""
        try:
            self._client = redis.Redis.from_url(
                self._url,
                decode_responses=False,
                socket_timeout=self._timeout,
                socket_connect_timeout=self._timeout,
            )
            self._client.ping()
            self._connected = True
            logger.info("[REDIS] Connected: %s", self._url.split("@")[-1])
            return True
        except redis.RedisError as e:
            self._connected = False
            logger.warning("[REDIS] Connection failed: %s", e)
            return False

    def disconnect(self) -> None:
        """Desconecta de Redis."""
        if self._client:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.warning("[REDIS] Disconnect error: %s", e)
        self._connected = False


def to_stream_fields(reading: DerivedReading) -> dict:
    """Convierte a formato Redis Stream (valores planos)."""
    return {
        "device_id": reading.device_id,
        "status": reading.status.value,
        "values": json.dumps(dict(reading.values), sort_keys=True),
        "remaining_volume": "" if reading.remaining_volume is None else repr(reading.remaining_volume),
        "time_to_empty": "" if reading.time_to_empty is None else repr(reading.time_to_empty),
        "clamped": ",".join(reading.clamped_fields),
        "category": reading.category,
        "source_timestamp": reading.source_timestamp.isoformat(),
        "calibration_version": str(reading.calibration_version),
    }


class RedisStreamSink(LiveUpdateSink):
    """Publica lecturas derivadas a un Redis Stream.

    Responsabilidades:
    - Publicar lecturas derivadas al stream
    - Acotar el stream (maxlen aproximado)
    """

    def __init__(
        self,
        connection: RedisConnection,
        stream_name: str = DEFAULT_STREAM,
        max_len: int = DEFAULT_MAX_LEN,
        name: str = "live",
    ):
        self.name = name
        self._conn = connection
        self._stream = stream_name
        self._max_len = max_len

    def publish(self, reading: DerivedReading) -> None:
        if not self._conn.is_connected and not self._conn.connect():
            raise SinkDeliveryError(self.name, "redis not connected")

        try:
            self._conn.client.xadd(
                self._stream,
                to_stream_fields(reading),
                maxlen=self._max_len,
                approximate=True,
            )
        except redis.RedisError as e:
            raise SinkDeliveryError(self.name, f"xadd failed: {e}", cause=e) from e

        logger.debug("[REDIS] Published: device=%s status=%s", reading.device_id, reading.status.value)

    def is_connected(self) -> bool:
        return self._conn.is_connected

    @property
    def stream_name(self) -> str:
        return self._stream
