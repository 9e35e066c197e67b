"""Transporte MQTT de lecturas crudas.

El cliente se suscribe a `sensors/+/raw` y entrega (topic, payload) al
MessageHandler. La conexión es asíncrona: si el broker no responde al
arrancar, el loop de paho sigue reintentando en segundo plano y el
servicio continúa aceptando lecturas por HTTP.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from common.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "sensors/+/raw"
RECONNECT_MIN_DELAY = 1
RECONNECT_MAX_DELAY = 30

MessageCallback = Callable[[str, bytes], object]


class MQTTClient:
    """Suscriptor MQTT de lecturas crudas.

    Uso:
        client = MQTTClient.from_settings(settings)
        client.set_message_handler(handler.handle)
        client.connect()
    """

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = DEFAULT_TOPIC,
        qos: int = 1,
        keepalive: int = 60,
        client_id: str = "derivation",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.qos = qos
        self.keepalive = keepalive
        self.client_id = f"{client_id}-{uuid.uuid4().hex[:8]}"
        self._credentials = (username, password) if username and password else None

        self._client: Optional[mqtt.Client] = None
        self._connected = threading.Event()
        self._ever_connected = False
        self._message_handler: Optional[MessageCallback] = None

        self.messages = 0
        self.handler_errors = 0
        self.reconnects = 0
        self.last_message_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MQTTClient":
        return cls(
            broker_host=settings.mqtt_broker_host,
            broker_port=settings.mqtt_broker_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topic=settings.mqtt_topic,
        )

    def set_message_handler(self, handler: MessageCallback) -> None:
        self._message_handler = handler

    def connect(self, wait_seconds: float = 5.0) -> bool:
        """Inicia la conexión y espera hasta `wait_seconds` a que se establezca.

        Retorna False si no conectó a tiempo; el loop sigue reintentando.
        """
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY, max_delay=RECONNECT_MAX_DELAY)
        if self._credentials:
            client.username_pw_set(*self._credentials)
        self._client = client

        logger.info("[MQTT] Connecting to %s:%d topic=%s", self.broker_host, self.broker_port, self.topic)
        client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
        client.loop_start()

        if self._connected.wait(wait_seconds):
            return True
        logger.error(
            "[MQTT] Broker %s:%d not reachable after %.1fs, retrying in background",
            self.broker_host, self.broker_port, wait_seconds,
        )
        return False

    def disconnect(self) -> None:
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        self._connected.clear()

    # ------------------------------------------------------------------
    # Callbacks (hilo de red de paho)
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return
        if self._ever_connected:
            self.reconnects += 1
        self._ever_connected = True
        self._connected.set()
        # Sesión limpia: hay que suscribirse en cada (re)conexión
        client.subscribe(self.topic, qos=self.qos)
        logger.info("[MQTT] Connected, subscribing to %s qos=%d", self.topic, self.qos)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        logger.warning("[MQTT] Disconnected: %s", reason_code)

    def _on_subscribe(self, client, userdata, mid, reason_codes, properties=None):
        for rc in reason_codes:
            if rc.is_failure:
                logger.error("[MQTT] Subscription to %s rejected: %s", self.topic, rc)

    def _on_message(self, client, userdata, msg):
        self.messages += 1
        self.last_message_at = time.time()
        if self._message_handler is None:
            return
        try:
            self._message_handler(msg.topic, msg.payload)
        except Exception:
            # Una excepción aquí detendría el hilo de red de paho
            self.handler_errors += 1
            logger.exception("[MQTT] Handler error topic=%s", msg.topic)

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def stats(self) -> dict:
        return {
            "connected": self.is_connected,
            "topic": self.topic,
            "messages": self.messages,
            "handler_errors": self.handler_errors,
            "reconnects": self.reconnects,
            "last_message_at": self.last_message_at,
        }
