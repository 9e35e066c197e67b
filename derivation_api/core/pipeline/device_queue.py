"""Cola acotada por dispositivo con política de desborde.

Si el transporte entrega lecturas más rápido de lo que se despachan,
cada dispositivo acumula como máximo `max_size` lecturas pendientes:
- drop_oldest=True  → se descarta la lectura más antigua
- drop_oldest=False → se descarta la lectura entrante
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from typing import Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DeviceQueueConfig:
    """Configuración de la cola por dispositivo."""
    max_size: int = 100
    drop_oldest: bool = True  # True = drop oldest, False = drop newest

    @classmethod
    def from_env(cls) -> "DeviceQueueConfig":
        return cls(
            max_size=int(os.getenv("DEVICE_QUEUE_MAX_SIZE", "100")),
            drop_oldest=os.getenv("DEVICE_QUEUE_DROP_OLDEST", "true").lower() == "true",
        )


@dataclass
class DeviceQueueStats:
    """Estadísticas de la cola."""
    enqueued: int = 0
    dequeued: int = 0
    dropped: int = 0


class DeviceQueue(Generic[T]):
    """Cola FIFO acotada, thread-safe.

    Uso:
        queue = DeviceQueue[RawReading](DeviceQueueConfig(max_size=10))
        accepted, dropped = queue.put(reading)
        reading = queue.get_nowait()
    """

    def __init__(self, config: Optional[DeviceQueueConfig] = None):
        self._config = config or DeviceQueueConfig()
        if self._config.max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._queue: deque[T] = deque()  # Manejamos límite manualmente
        self._lock = threading.Lock()
        self._stats = DeviceQueueStats()

    def put(self, item: T) -> Tuple[bool, Optional[T]]:
        """Agrega un item aplicando la política de desborde.

        Returns:
            (aceptado, item descartado o None)
        """
        with self._lock:
            dropped = None
            if len(self._queue) >= self._config.max_size:
                self._stats.dropped += 1
                if not self._config.drop_oldest:
                    return False, item
                dropped = self._queue.popleft()

            self._queue.append(item)
            self._stats.enqueued += 1
            return True, dropped

    def get_nowait(self) -> Optional[T]:
        """Obtiene el item más antiguo sin esperar."""
        with self._lock:
            if not self._queue:
                return None
            self._stats.dequeued += 1
            return self._queue.popleft()

    def clear(self) -> int:
        """Limpia la cola. Retorna el número de items eliminados."""
        with self._lock:
            count = len(self._queue)
            self._queue.clear()
            return count

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._queue

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "enqueued": self._stats.enqueued,
                "dequeued": self._stats.dequeued,
                "dropped": self._stats.dropped,
                "current_size": len(self._queue),
                "max_size": self._config.max_size,
                "drop_policy": "drop_oldest" if self._config.drop_oldest else "drop_newest",
            }
