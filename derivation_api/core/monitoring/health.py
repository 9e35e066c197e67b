"""Health checks del sistema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from ..pipeline.coordinator import IngestionCoordinator
from ..transport.mqtt_client import MQTTClient


@dataclass
class HealthStatus:
    """Estado de salud del sistema."""
    healthy: bool
    coordinator_running: bool
    mqtt_connected: Optional[bool]
    sinks: Dict[str, bool] = field(default_factory=dict)
    calibrations: int = 0

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "coordinator_running": self.coordinator_running,
            "mqtt_connected": self.mqtt_connected,
            "sinks": dict(self.sinks),
            "calibrations": self.calibrations,
        }


class HealthChecker:
    """Verifica el estado de salud del sistema.

    Un sink caído degrada el servicio pero no lo marca como no sano:
    el resto de sinks y la API de consulta siguen funcionando.
    """

    def __init__(self, coordinator: IngestionCoordinator, mqtt: Optional[MQTTClient] = None):
        self._coordinator = coordinator
        self._mqtt = mqtt

    def check_sinks(self) -> Dict[str, bool]:
        dispatcher = self._coordinator.dispatcher
        result = {}
        for sink in (dispatcher.persistence, dispatcher.live):
            if sink is not None:
                result[sink.name] = bool(sink.is_connected())
        return result

    def get_status(self) -> HealthStatus:
        running = self._coordinator.is_running
        mqtt_ok = self._mqtt.is_connected if self._mqtt else None
        return HealthStatus(
            healthy=running and mqtt_ok is not False,
            coordinator_running=running,
            mqtt_connected=mqtt_ok,
            sinks=self.check_sinks(),
            calibrations=len(self._coordinator.store),
        )
