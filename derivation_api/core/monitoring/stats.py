"""Estadísticas de procesamiento."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict

from ..domain.reading import IngestOutcome, utcnow


@dataclass
class Stats:
    """Estadísticas de procesamiento de lecturas (thread-safe)."""

    received: int = 0
    outcomes: Dict[str, int] = field(
        default_factory=lambda: {o.value: 0 for o in IngestOutcome}
    )
    sink_failures: Dict[str, int] = field(default_factory=dict)
    clamped: int = 0
    started_at: datetime = field(default_factory=utcnow)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} "
            f"dispatched={self.outcomes[IngestOutcome.DISPATCHED.value]} "
            f"dropped={self.dropped}"
        )

    def record_received(self) -> None:
        with self._lock:
            self.received += 1

    def record(self, outcome: IngestOutcome) -> None:
        with self._lock:
            self.outcomes[outcome.value] += 1

    def record_sink_failure(self, sink: str) -> None:
        with self._lock:
            self.sink_failures[sink] = self.sink_failures.get(sink, 0) + 1

    def record_clamp(self) -> None:
        with self._lock:
            self.clamped += 1

    @property
    def dropped(self) -> int:
        return sum(v for k, v in self.outcomes.items() if k.startswith("dropped_"))

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        with self._lock:
            return {
                "received": self.received,
                **dict(self.outcomes),
                "dropped": self.dropped,
                "clamped": self.clamped,
                "sink_failures": dict(self.sink_failures),
                "started_at": self.started_at.isoformat(),
            }
