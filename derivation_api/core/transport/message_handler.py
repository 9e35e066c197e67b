"""Handler de mensajes MQTT."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

from ..pipeline.coordinator import IngestionCoordinator

logger = logging.getLogger(__name__)


def device_id_from_topic(topic: str) -> Optional[str]:
    """Extrae el deviceId de topics con forma `sensors/{device_id}/raw`."""
    parts = topic.split("/")
    if len(parts) >= 3 and parts[0] == "sensors" and parts[1] not in ("", "+", "#"):
        return parts[1]
    return None


class MessageHandler:
    """Maneja mensajes MQTT y los entrega al coordinador.

    Responsabilidades:
    - Parseo de JSON
    - deviceId desde el topic cuando el payload no lo trae
    - Un mensaje malformado nunca afecta a los demás
    """

    def __init__(self, coordinator: IngestionCoordinator):
        self._coordinator = coordinator
        self.received = 0
        self.accepted = 0
        self.rejected = 0
        self.last_message_at: float = 0

    def handle(self, topic: str, payload: bytes) -> bool:
        """Procesa un mensaje MQTT. Retorna True si la lectura fue aceptada."""
        self.received += 1
        self.last_message_at = time.time()

        data = self._parse_json(payload, topic)
        if data is None:
            self.rejected += 1
            return False

        try:
            accepted = self._coordinator.ingest_payload(data, device_id_hint=device_id_from_topic(topic))
        except Exception as e:
            logger.exception("[HANDLER] Error topic=%s: %s", topic, e)
            accepted = False

        if accepted:
            self.accepted += 1
        else:
            self.rejected += 1
        return accepted

    def _parse_json(self, payload: bytes, topic: str) -> Optional[Any]:
        """Parsea payload JSON."""
        try:
            return json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("[HANDLER] Invalid JSON: %s (topic=%s)", e, topic)
            return None

    @property
    def stats(self) -> dict:
        return {
            "received": self.received,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "last_message_at": self.last_message_at,
        }
