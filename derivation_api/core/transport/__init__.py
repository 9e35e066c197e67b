"""Transport layer - Recepción de lecturas crudas por MQTT."""

from .message_handler import MessageHandler, device_id_from_topic
from .mqtt_client import MQTTClient

__all__ = ["MQTTClient", "MessageHandler", "device_id_from_topic"]
