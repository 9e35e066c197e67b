"""Coordinador de ingesta: cruda -> calibración -> derivación -> sinks.

Planificación por dispositivo:
- cada dispositivo tiene su DeviceQueue acotada
- un dispositivo aparece como máximo una vez en la cola de listos
- un worker toma un dispositivo, procesa UNA lectura y lo reencola si
  quedan pendientes

Así el orden por dispositivo se conserva y dispositivos distintos se
procesan en paralelo. Entre dispositivos no hay orden garantizado.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..calibration.store import CalibrationStore
from ..derivation.engine import derive
from ..domain.calibration import CalibrationRecord
from ..domain.errors import CalibrationError, CalibrationMissing, SinkDeliveryError, ValidationError
from ..domain.reading import DerivedReading, IngestOutcome, RawReading
from ..monitoring.metrics import CLAMPED_VALUES_TOTAL, READINGS_TOTAL
from ..monitoring.stats import Stats
from ..validation.payload_validator import ValidationResult, check_raw_reading, validate_raw_payload
from .device_queue import DeviceQueue, DeviceQueueConfig
from .dispatcher import SinkDispatcher

logger = logging.getLogger(__name__)

DEFAULT_NUM_WORKERS = 4

# Registro del store usado como calibración de respaldo con la política "default"
DEFAULT_CALIBRATION_ID = "*"


class MissingCalibrationPolicy(str, Enum):
    """Qué hacer con lecturas de dispositivos sin calibración."""
    DROP = "drop"
    DEFAULT = "default"


class IngestionCoordinator:
    """Procesa lecturas crudas y las despacha a los sinks.

    Uso:
        coordinator = IngestionCoordinator(store, dispatcher)
        coordinator.start()
        coordinator.ingest(raw)
        coordinator.get_latest("tank-01")
    """

    def __init__(
        self,
        store: CalibrationStore,
        dispatcher: Optional[SinkDispatcher] = None,
        queue_config: Optional[DeviceQueueConfig] = None,
        num_workers: int = DEFAULT_NUM_WORKERS,
        missing_policy: MissingCalibrationPolicy = MissingCalibrationPolicy.DROP,
        default_device_id: str = DEFAULT_CALIBRATION_ID,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")

        self._store = store
        self._dispatcher = dispatcher or SinkDispatcher()
        self._dispatcher.set_failure_listener(self._on_sink_failure)
        self._queue_config = queue_config or DeviceQueueConfig.from_env()
        self._num_workers = num_workers
        self._missing_policy = MissingCalibrationPolicy(missing_policy)
        # Solo el id: el registro se resuelve en cada lectura contra el snapshot vigente
        self._default_device_id = default_device_id

        self._queues: Dict[str, DeviceQueue[RawReading]] = {}
        self._scheduled: set[str] = set()
        self._ready: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0

        self._latest: Dict[str, DerivedReading] = {}
        self._latest_lock = threading.Lock()

        self._stats = Stats()
        self._workers: List[threading.Thread] = []
        self._running = False

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arranca los workers."""
        if self._running:
            return
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"derivation-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        self._running = True
        logger.info(
            "[COORDINATOR] Started workers=%d queue_max=%d policy=%s",
            self._num_workers,
            self._queue_config.max_size,
            self._missing_policy.value,
        )

    def stop(self, drain: bool = True, timeout: float = 10.0) -> None:
        """Detiene los workers. Con drain=True procesa primero lo pendiente."""
        if drain and self._running:
            self.flush(timeout=timeout)
        for _ in self._workers:
            self._ready.put(None)
        for t in self._workers:
            t.join(timeout=5.0)
        self._workers.clear()
        self._running = False
        self._dispatcher.shutdown()
        logger.info("[COORDINATOR] Stopped. %s", self._stats)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Espera a que no queden lecturas encoladas, en proceso ni en reintento.

        Returns:
            True si se vació antes del timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending > 0:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self._dispatcher.flush(timeout=remaining)

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Entrada
    # ------------------------------------------------------------------

    def ingest(self, raw: RawReading) -> bool:
        """Acepta una lectura cruda para procesamiento asíncrono.

        Nunca lanza excepciones hacia la frontera de transporte.

        Returns:
            True si la lectura quedó encolada
        """
        self._stats.record_received()
        try:
            check_raw_reading(raw)
        except ValidationError as e:
            logger.warning("[COORDINATOR] Dropped invalid reading device=%s: %s", e.device_id, e)
            self._record(IngestOutcome.DROPPED_VALIDATION)
            return False

        device_id = raw.device_id
        with self._lock:
            dq = self._queues.get(device_id)
            if dq is None:
                dq = DeviceQueue(self._queue_config)
                self._queues[device_id] = dq

            accepted, dropped = dq.put(raw)
            if accepted and dropped is None:
                self._pending += 1
            if accepted and device_id not in self._scheduled:
                self._scheduled.add(device_id)
                self._ready.put(device_id)

        if dropped is not None:
            logger.warning(
                "[COORDINATOR] Queue full device=%s, dropped %s reading",
                device_id,
                "oldest" if accepted else "newest",
            )
            self._record(IngestOutcome.DROPPED_OVERFLOW)
        return accepted

    def admit_payload(
        self,
        payload: Any,
        device_id_hint: Optional[str] = None,
    ) -> Tuple[ValidationResult, bool]:
        """Valida un payload sin tipar y lo ingesta.

        Punto único de entrada para MQTT y HTTP: los rechazos se cuentan
        aquí sea cual sea el transporte.

        Returns:
            (resultado de validación, True si la lectura quedó encolada)
        """
        result = validate_raw_payload(payload, device_id_hint=device_id_hint)
        if not result.valid:
            self._stats.record_received()
            self._record(IngestOutcome.DROPPED_VALIDATION)
            return result, False
        for warning in result.warnings:
            logger.debug("[COORDINATOR] device=%s %s", result.reading.device_id, warning)
        return result, self.ingest(result.reading)

    def ingest_payload(self, payload: Any, device_id_hint: Optional[str] = None) -> bool:
        """Valida un payload sin tipar y lo ingesta."""
        return self.admit_payload(payload, device_id_hint=device_id_hint)[1]

    # ------------------------------------------------------------------
    # Procesamiento
    # ------------------------------------------------------------------

    def process(self, raw: RawReading) -> IngestOutcome:
        """Procesa una lectura ya validada de forma síncrona.

        lookup → derive → dispatch → cache. Los errores se cuentan y se
        registran; ninguno se propaga.
        """
        device_id = raw.device_id

        try:
            cal = self._resolve_calibration(device_id)
        except CalibrationMissing as e:
            logger.warning("[COORDINATOR] Dropped reading: %s", e)
            return self._record(IngestOutcome.DROPPED_MISSING_CALIBRATION)

        try:
            derived = derive(raw, cal)
        except CalibrationError as e:
            logger.error(
                "[COORDINATOR] Calibration error device=%s field=%s version=%d: %s "
                "(check device configuration)",
                device_id, e.field, cal.version, e,
            )
            return self._record(IngestOutcome.DROPPED_CALIBRATION_ERROR)

        for name in derived.clamped_fields:
            logger.debug(
                "[COORDINATOR] Clamped device=%s field=%s raw=%s -> %s",
                device_id, name, raw.fields[name], derived.values[name],
            )
            CLAMPED_VALUES_TOTAL.labels(field=name).inc()
            self._stats.record_clamp()

        # Solo el primer intento: los reintentos siguen en segundo plano
        results = self._dispatcher.dispatch(derived)
        if results and not any(r.delivered for r in results):
            if any(r.pending for r in results):
                return self._record(IngestOutcome.DELIVERY_DEFERRED)
            return self._record(IngestOutcome.DELIVERY_FAILED)

        with self._latest_lock:
            self._latest[device_id] = derived
        logger.debug(
            "[COORDINATOR] Dispatched device=%s status=%s values=%s",
            device_id, derived.status.value, dict(derived.values),
        )
        return self._record(IngestOutcome.DISPATCHED)

    def _resolve_calibration(self, device_id: str) -> CalibrationRecord:
        record = self._store.get(device_id)
        if record is not None:
            return record
        if self._missing_policy == MissingCalibrationPolicy.DEFAULT:
            fallback = self._store.get(self._default_device_id)
            if fallback is not None:
                logger.debug(
                    "[COORDINATOR] No calibration for device=%s, using '%s' version=%d",
                    device_id, self._default_device_id, fallback.version,
                )
                return fallback
        raise CalibrationMissing(device_id)

    def _record(self, outcome: IngestOutcome) -> IngestOutcome:
        self._stats.record(outcome)
        READINGS_TOTAL.labels(outcome=outcome.value).inc()
        return outcome

    def _on_sink_failure(self, failure: SinkDeliveryError) -> None:
        self._stats.record_sink_failure(failure.sink)

    def _worker_loop(self, worker_id: int) -> None:
        while True:
            device_id = self._ready.get()
            if device_id is None:
                return

            with self._lock:
                dq = self._queues[device_id]
            raw = dq.get_nowait()

            if raw is not None:
                try:
                    self.process(raw)
                except Exception as e:
                    logger.exception(
                        "[COORDINATOR] Worker %d error device=%s: %s", worker_id, device_id, e,
                    )

            with self._lock:
                if raw is not None:
                    self._pending -= 1
                if dq.is_empty:
                    # Cola vacía y sin planificar: se libera, el siguiente ingest la recrea
                    self._scheduled.discard(device_id)
                    del self._queues[device_id]
                else:
                    self._ready.put(device_id)
                if self._pending == 0:
                    self._idle.notify_all()

    # ------------------------------------------------------------------
    # Consulta y configuración
    # ------------------------------------------------------------------

    def get_latest(self, device_id: str) -> Optional[DerivedReading]:
        """Última lectura despachada del dispositivo, o None."""
        with self._latest_lock:
            return self._latest.get(device_id)

    def get_all(self) -> List[DerivedReading]:
        """Última lectura despachada de cada dispositivo."""
        with self._latest_lock:
            return [self._latest[k] for k in sorted(self._latest)]

    def upsert_calibration(self, record: CalibrationRecord) -> CalibrationRecord:
        return self._store.upsert(record)

    def remove_calibration(self, device_id: str) -> bool:
        return self._store.remove(device_id)

    @property
    def store(self) -> CalibrationStore:
        return self._store

    @property
    def dispatcher(self) -> SinkDispatcher:
        return self._dispatcher

    @property
    def stats(self) -> dict:
        """Estadísticas del coordinador."""
        with self._lock:
            queued = sum(q.size for q in self._queues.values())
            devices = len(self._queues)
            pending = self._pending
        return {
            "running": self._running,
            "workers": self._num_workers,
            "devices": devices,
            "queued": queued,
            "pending": pending,
            "calibration_version": self._store.version,
            **self._stats.to_dict(),
        }

    def device_stats(self, device_id: str) -> Optional[dict]:
        """Estado de la cola de un dispositivo."""
        with self._lock:
            dq = self._queues.get(device_id)
            state = "processing" if device_id in self._scheduled else "idle"
        if dq is None:
            return None
        return {"state": state, **dq.get_stats()}
