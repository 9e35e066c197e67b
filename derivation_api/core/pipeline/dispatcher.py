"""Despacho de lecturas derivadas a los sinks.

Cada sink se atiende de forma aislada:
- las entregas a distintos sinks corren en paralelo
- cada intento tiene timeout; un intento vencido se abandona
- el worker del coordinador solo espera el PRIMER intento de cada sink
- los reintentos corren en segundo plano, en una cola por dispositivo y
  sink que conserva el orden de llegada
- agotados los reintentos se reporta SinkDeliveryError (nunca se propaga)

Mientras un dispositivo tiene lecturas pendientes de reintento en un sink,
sus lecturas nuevas para ese sink se encolan detrás en lugar de intentarse
directamente: el sink nunca ve una lectura posterior antes que una anterior.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from ..domain.errors import SinkDeliveryError
from ..domain.reading import DerivedReading
from ..domain.sinks import LiveUpdateSink, PersistenceSink
from ..monitoring.metrics import SINK_FAILURES_TOTAL
from .retry import RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_BACKLOG = 1000

FailureListener = Callable[[SinkDeliveryError], None]


@dataclass
class DeliveryResult:
    """Resultado del primer intento de entrega a un sink.

    pending=True: el intento falló (o había reintentos previos del mismo
    dispositivo) y la lectura quedó en la cola de reintentos del sink.
    """
    sink: str
    delivered: bool
    attempts: int
    error: Optional[SinkDeliveryError] = None
    pending: bool = False


class _Pending:
    __slots__ = ("reading", "attempts", "last_error")

    def __init__(self, reading: DerivedReading, attempts: int = 0, last_error=None):
        self.reading = reading
        self.attempts = attempts
        self.last_error = last_error


class SinkChannel:
    """Un sink con su pool de llamadas y su cola de reintentos por dispositivo.

    Uso:
        channel = SinkChannel("persistence", sink.store, RetryConfig())
        result = channel.deliver(derived)   # solo el primer intento
        channel.flush(timeout=10)           # espera a que se vacíen los reintentos
    """

    def __init__(
        self,
        name: str,
        call: Callable[[DerivedReading], None],
        retry: RetryConfig,
        max_workers: int = 4,
        max_backlog: int = DEFAULT_MAX_BACKLOG,
        on_failure: Optional[FailureListener] = None,
    ):
        self.name = name
        self._call = call
        self._retry = retry
        self._max_backlog = max(1, max_backlog)
        self._on_failure = on_failure

        self._calls = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"sink-{name}")
        self._retries = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"retry-{name}")

        self._backlog: Dict[str, Deque[_Pending]] = {}
        self._lock = threading.Lock()
        self._drained = threading.Condition(self._lock)
        self._closed = threading.Event()

    @property
    def max_attempts(self) -> int:
        return max(1, self._retry.max_attempts)

    def deliver(self, reading: DerivedReading) -> DeliveryResult:
        """Primer intento de entrega. No lanza excepciones ni duerme."""
        device_id = reading.device_id

        with self._lock:
            backlog = self._backlog.get(device_id)
            if backlog is not None:
                failure = self._enqueue(backlog, _Pending(reading))
                return DeliveryResult(
                    sink=self.name, delivered=False, attempts=0, error=failure, pending=failure is None,
                )

        error = self._attempt(reading)
        if error is None:
            return DeliveryResult(sink=self.name, delivered=True, attempts=1)

        if self.max_attempts <= 1:
            failure = self._exhausted(reading, 1, error)
            return DeliveryResult(sink=self.name, delivered=False, attempts=1, error=failure)

        logger.warning(
            "[DISPATCH] RETRY_SCHEDULED sink=%s device=%s attempt=1/%d err=%s",
            self.name, device_id, self.max_attempts, error,
        )
        with self._lock:
            created = device_id not in self._backlog
            backlog = self._backlog.setdefault(device_id, deque())
            backlog.append(_Pending(reading, attempts=1, last_error=error))
        if created:
            try:
                self._retries.submit(self._drain, device_id)
            except RuntimeError:
                # Pool cerrado durante el shutdown
                with self._lock:
                    self._backlog.pop(device_id, None)
                    self._drained.notify_all()
                failure = self._exhausted(reading, 1, error)
                return DeliveryResult(sink=self.name, delivered=False, attempts=1, error=failure)
        return DeliveryResult(sink=self.name, delivered=False, attempts=1, pending=True)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Espera a que no queden reintentos pendientes."""
        with self._drained:
            return self._drained.wait_for(lambda: not self._backlog, timeout=timeout)

    @property
    def backlog_size(self) -> int:
        with self._lock:
            return sum(len(q) for q in self._backlog.values())

    def shutdown(self) -> None:
        self._closed.set()
        self._retries.shutdown(wait=False, cancel_futures=True)
        self._calls.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------

    def _attempt(self, reading: DerivedReading) -> Optional[BaseException]:
        """Un intento con timeout. Retorna el error o None si se entregó."""
        try:
            future = self._calls.submit(self._call, reading)
        except RuntimeError as e:
            # Pool cerrado durante el shutdown
            return e
        try:
            future.result(timeout=self._retry.timeout)
            return None
        except FutureTimeout:
            future.cancel()
            return TimeoutError(f"no response within {self._retry.timeout:.2f}s")
        except Exception as e:
            return e

    def _enqueue(self, backlog: Deque[_Pending], item: _Pending) -> Optional[SinkDeliveryError]:
        # Llamado con el lock tomado. La cabeza puede estar en vuelo: se
        # descarta la lectura entrante.
        if len(backlog) >= self._max_backlog:
            failure = SinkDeliveryError(
                self.name,
                f"retry backlog full for device={item.reading.device_id}, reading dropped",
                attempts=0,
            )
            logger.error("[DISPATCH] BACKLOG_FULL %s", failure)
            self._report(failure)
            return failure
        backlog.append(item)
        return None

    def _drain(self, device_id: str) -> None:
        """Reintenta en orden las lecturas pendientes de un dispositivo."""
        while not self._closed.is_set():
            with self._lock:
                backlog = self._backlog.get(device_id)
                if not backlog:
                    self._backlog.pop(device_id, None)
                    self._drained.notify_all()
                    return
                head = backlog[0]

            if head.attempts > 0:
                delay = self._retry.calculate_delay(head.attempts)
                if self._closed.wait(delay):
                    return

            error = self._attempt(head.reading)
            head.attempts += 1

            if error is None:
                logger.info(
                    "[DISPATCH] RETRY_OK sink=%s device=%s attempt=%d",
                    self.name, device_id, head.attempts,
                )
            elif head.attempts < self.max_attempts:
                head.last_error = error
                logger.warning(
                    "[DISPATCH] RETRY sink=%s device=%s attempt=%d/%d err=%s",
                    self.name, device_id, head.attempts, self.max_attempts, error,
                )
                continue
            else:
                self._exhausted(head.reading, head.attempts, error)

            with self._lock:
                if backlog and backlog[0] is head:
                    backlog.popleft()

    def _exhausted(self, reading: DerivedReading, attempts: int, error: BaseException) -> SinkDeliveryError:
        failure = SinkDeliveryError(
            self.name,
            f"delivery failed for device={reading.device_id} after {attempts} attempts: {error}",
            attempts=attempts,
            cause=error,
        )
        logger.error("[DISPATCH] RETRY_EXHAUSTED %s", failure)
        self._report(failure)
        return failure

    def _report(self, failure: SinkDeliveryError) -> None:
        SINK_FAILURES_TOTAL.labels(sink=self.name).inc()
        if self._on_failure is not None:
            try:
                self._on_failure(failure)
            except Exception:
                logger.exception("[DISPATCH] Failure listener error sink=%s", self.name)


class SinkDispatcher:
    """Entrega cada lectura derivada a todos los sinks configurados.

    Uso:
        dispatcher = SinkDispatcher(persistence=db_sink, live=redis_sink)
        dispatcher.set_failure_listener(on_failure)
        results = dispatcher.dispatch(derived)
    """

    def __init__(
        self,
        persistence: Optional[PersistenceSink] = None,
        live: Optional[LiveUpdateSink] = None,
        retry: Optional[RetryConfig] = None,
        max_workers: int = 4,
        max_backlog: int = DEFAULT_MAX_BACKLOG,
    ):
        self._retry = retry or RetryConfig.from_env()
        self._persistence = persistence
        self._live = live
        self._listener: Optional[FailureListener] = None
        self._channels: List[SinkChannel] = []

        # Dos llamadas por worker: deja hueco a intentos abandonados por timeout
        call_workers = max(2, max_workers * 2)
        for sink, call in ((persistence, "store"), (live, "publish")):
            if sink is None:
                continue
            self._channels.append(SinkChannel(
                sink.name,
                getattr(sink, call),
                self._retry,
                max_workers=call_workers,
                max_backlog=max_backlog,
                on_failure=self._notify_failure,
            ))

        self._deliveries = ThreadPoolExecutor(
            max_workers=max(1, max_workers * max(1, len(self._channels))),
            thread_name_prefix="dispatch",
        )

    def set_failure_listener(self, listener: Optional[FailureListener]) -> None:
        """Callback invocado por cada SinkDeliveryError (inmediato o diferido)."""
        self._listener = listener

    def _notify_failure(self, failure: SinkDeliveryError) -> None:
        if self._listener is not None:
            self._listener(failure)

    @property
    def sink_names(self) -> List[str]:
        return [c.name for c in self._channels]

    @property
    def persistence(self) -> Optional[PersistenceSink]:
        return self._persistence

    @property
    def live(self) -> Optional[LiveUpdateSink]:
        return self._live

    @property
    def backlog(self) -> Dict[str, int]:
        """Lecturas pendientes de reintento por sink."""
        return {c.name: c.backlog_size for c in self._channels}

    def dispatch(self, reading: DerivedReading) -> List[DeliveryResult]:
        """Primer intento en todos los sinks en paralelo."""
        if not self._channels:
            return []
        if len(self._channels) == 1:
            return [self._channels[0].deliver(reading)]

        futures = [self._deliveries.submit(ch.deliver, reading) for ch in self._channels]
        return [f.result() for f in futures]

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Espera a que todos los sinks vacíen sus reintentos."""
        for channel in self._channels:
            if not channel.flush(timeout=timeout):
                return False
        return True

    def shutdown(self) -> None:
        self._deliveries.shutdown(wait=True)
        for channel in self._channels:
            channel.shutdown()
