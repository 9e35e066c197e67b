from __future__ import annotations

import threading
from collections import deque
from typing import Callable, List

from ..domain.reading import DerivedReading
from ..domain.sinks import LiveUpdateSink, PersistenceSink


class InMemorySink(PersistenceSink, LiveUpdateSink):
    """Sink en memoria para desarrollo y tests.

    - Guarda las últimas `maxlen` lecturas recibidas.
    - `subscribe` registra callbacks que reciben cada lectura publicada.
    - Sirve tanto de sink de persistencia como de live-update.
    """

    def __init__(self, name: str = "memory", maxlen: int = 10_000) -> None:
        self.name = name
        self._readings: "deque[DerivedReading]" = deque(maxlen=maxlen)
        self._subscribers: List[Callable[[DerivedReading], None]] = []
        self._lock = threading.Lock()

    def store(self, reading: DerivedReading) -> None:
        with self._lock:
            self._readings.append(reading)

    def publish(self, reading: DerivedReading) -> None:
        with self._lock:
            self._readings.append(reading)
            subscribers = list(self._subscribers)
        for handler in subscribers:
            handler(reading)

    def subscribe(self, handler: Callable[[DerivedReading], None]) -> None:
        with self._lock:
            self._subscribers.append(handler)

    @property
    def readings(self) -> List[DerivedReading]:
        with self._lock:
            return list(self._readings)

    def clear(self) -> None:
        with self._lock:
            self._readings.clear()
