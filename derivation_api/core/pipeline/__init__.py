"""Pipeline layer - Procesamiento y despacho de lecturas."""

from .coordinator import IngestionCoordinator, MissingCalibrationPolicy
from .device_queue import DeviceQueue, DeviceQueueConfig
from .dispatcher import DeliveryResult, SinkDispatcher
from .retry import RetryConfig

__all__ = [
    "IngestionCoordinator",
    "MissingCalibrationPolicy",
    "DeviceQueue",
    "DeviceQueueConfig",
    "SinkDispatcher",
    "DeliveryResult",
    "RetryConfig",
]
