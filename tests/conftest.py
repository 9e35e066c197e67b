"""Fixtures compartidas para los tests del pipeline de derivación."""

import os
import threading
import time
from datetime import datetime, timezone
from typing import List

import pytest

os.environ.setdefault("DERIVATION_AUTOSTART", "0")

from derivation_api.core.calibration.store import CalibrationStore
from derivation_api.core.domain.calibration import CalibrationRecord, FieldMapping, Thresholds
from derivation_api.core.domain.errors import SinkDeliveryError
from derivation_api.core.domain.reading import DerivedReading, RawReading
from derivation_api.core.domain.sinks import LiveUpdateSink, PersistenceSink
from derivation_api.core.pipeline.coordinator import IngestionCoordinator
from derivation_api.core.pipeline.device_queue import DeviceQueueConfig
from derivation_api.core.pipeline.dispatcher import SinkDispatcher
from derivation_api.core.pipeline.retry import RetryConfig


# =============================================================================
# FAKES
# =============================================================================

class RecordingSink(PersistenceSink, LiveUpdateSink):
    """Sink que registra todo lo que recibe."""

    def __init__(self, name: str):
        self.name = name
        self.received: List[DerivedReading] = []
        self._lock = threading.Lock()

    def store(self, reading):
        with self._lock:
            self.received.append(reading)

    def publish(self, reading):
        with self._lock:
            self.received.append(reading)

    def sequences(self, device_id: str) -> List[int]:
        with self._lock:
            return [r.raw.sequence for r in self.received if r.device_id == device_id]


class FailingSink(PersistenceSink, LiveUpdateSink):
    """Sink que rechaza todas las llamadas."""

    def __init__(self, name: str):
        self.name = name
        self.calls = 0

    def store(self, reading):
        self.calls += 1
        raise SinkDeliveryError(self.name, "backend unreachable")

    def publish(self, reading):
        self.calls += 1
        raise SinkDeliveryError(self.name, "backend unreachable")


class SlowSink(PersistenceSink, LiveUpdateSink):
    """Sink que tarda más que el timeout configurado."""

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay

    def store(self, reading):
        time.sleep(self.delay)

    def publish(self, reading):
        time.sleep(self.delay)


class FlakySink(PersistenceSink, LiveUpdateSink):
    """Sink que falla las primeras `failures` llamadas y después registra."""

    def __init__(self, name: str, failures: int):
        self.name = name
        self.failures = failures
        self.calls = 0
        self.received: List[DerivedReading] = []
        self._lock = threading.Lock()

    def _accept(self, reading):
        with self._lock:
            self.calls += 1
            if self.calls <= self.failures:
                raise ConnectionError("transient")
            self.received.append(reading)

    def store(self, reading):
        self._accept(reading)

    def publish(self, reading):
        self._accept(reading)

    def sequences(self, device_id: str) -> List[int]:
        with self._lock:
            return [r.raw.sequence for r in self.received if r.device_id == device_id]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fast_retry() -> RetryConfig:
    """Reintentos sin espera para tests."""
    return RetryConfig(max_attempts=2, base_delay=0.0, jitter=False, timeout=1.0)


@pytest.fixture
def tank_calibration() -> CalibrationRecord:
    """Tanque de 5000 L con sensor de nivel de 10 bits."""
    return CalibrationRecord(
        device_id="tank-01",
        mappings={
            "level": FieldMapping(raw_min=0, raw_max=1023, phys_min=0, phys_max=100, unit="%"),
            "flow": FieldMapping(raw_min=0, raw_max=1000, phys_min=0, phys_max=100, unit="L/h"),
        },
        capacity=5000,
        thresholds=Thresholds(critical=15, low=30),
        category="diesel",
    )


@pytest.fixture
def store(tank_calibration) -> CalibrationStore:
    store = CalibrationStore()
    store.upsert(tank_calibration)
    return store


@pytest.fixture
def make_raw():
    """Factory de lecturas crudas."""
    def _make(device_id="tank-01", sequence=None, **fields):
        return RawReading(
            device_id=device_id,
            fields=fields or {"level": 512},
            timestamp=datetime(2026, 1, 31, 8, 0, 0, tzinfo=timezone.utc),
            sensor_type="ultrasonic",
            sequence=sequence,
        )
    return _make


@pytest.fixture
def build_coordinator(fast_retry):
    """Crea coordinadores arrancados y los detiene al final del test."""
    created = []

    def _build(store, persistence=None, live=None, retry=None, **kwargs):
        dispatcher = SinkDispatcher(
            persistence=persistence,
            live=live,
            retry=retry or fast_retry,
            max_workers=kwargs.get("num_workers", 4),
        )
        kwargs.setdefault("queue_config", DeviceQueueConfig(max_size=1000))
        coordinator = IngestionCoordinator(store, dispatcher, **kwargs)
        coordinator.start()
        created.append(coordinator)
        return coordinator

    yield _build

    for c in created:
        c.stop(drain=False)
