"""Store de calibraciones con recarga en caliente.

Los lectores nunca toman el lock: leen la referencia al snapshot vigente,
que es inmutable. Los escritores construyen un snapshot nuevo bajo lock
y reemplazan la referencia de una sola vez.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ..domain.calibration import CalibrationRecord
from ..domain.errors import CalibrationError, CalibrationMissing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationSnapshot:
    """Vista inmutable de todas las calibraciones en un instante."""
    version: int
    records: Mapping[str, CalibrationRecord]


class CalibrationStore:
    """Calibraciones por dispositivo, lookup O(1).

    Uso:
        store = CalibrationStore()
        store.upsert(record)
        cal = store.lookup("tank-01")  # CalibrationMissing si no existe
    """

    def __init__(self, records: Iterable[CalibrationRecord] = ()):
        self._write_lock = threading.Lock()
        self._snapshot = CalibrationSnapshot(version=0, records=MappingProxyType({}))
        records = list(records)
        if records:
            self.replace_all(records)

    def get(self, device_id: str) -> Optional[CalibrationRecord]:
        """Retorna el registro vigente o None."""
        return self._snapshot.records.get(device_id)

    def lookup(self, device_id: str) -> CalibrationRecord:
        """Retorna el registro vigente.

        Raises:
            CalibrationMissing: si no hay registro para el dispositivo
        """
        record = self._snapshot.records.get(device_id)
        if record is None:
            raise CalibrationMissing(device_id)
        return record

    def snapshot(self) -> CalibrationSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def upsert(self, record: CalibrationRecord) -> CalibrationRecord:
        """Publica (o reemplaza) el registro de un dispositivo.

        Returns:
            Copia versionada del registro publicado

        Raises:
            CalibrationError: si el registro viola sus invariantes
        """
        _check(record)
        with self._write_lock:
            current = self._snapshot
            version = current.version + 1
            stored = dataclasses.replace(record, version=version)
            records = dict(current.records)
            records[stored.device_id] = stored
            self._publish(version, records)

        logger.info("[STORE] Upsert device=%s version=%d", stored.device_id, version)
        return stored

    def remove(self, device_id: str) -> bool:
        """Elimina el registro de un dispositivo. Retorna False si no existía."""
        with self._write_lock:
            current = self._snapshot
            if device_id not in current.records:
                return False
            records = dict(current.records)
            del records[device_id]
            self._publish(current.version + 1, records)

        logger.info("[STORE] Removed device=%s", device_id)
        return True

    def replace_all(self, records: Iterable[CalibrationRecord]) -> int:
        """Reemplaza todas las calibraciones de forma atómica.

        Valida todos los registros antes de publicar: si uno falla,
        el snapshot vigente queda intacto.

        Returns:
            Versión publicada
        """
        records = list(records)
        for record in records:
            _check(record)

        with self._write_lock:
            version = self._snapshot.version + 1
            new_records = {
                r.device_id: dataclasses.replace(r, version=version) for r in records
            }
            self._publish(version, new_records)

        logger.info("[STORE] Reloaded %d records version=%d", len(new_records), version)
        return version

    def _publish(self, version: int, records: dict) -> None:
        self._snapshot = CalibrationSnapshot(version=version, records=MappingProxyType(records))

    def __len__(self) -> int:
        return len(self._snapshot.records)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._snapshot.records


def _check(record: CalibrationRecord) -> None:
    problems = record.problems()
    if problems:
        raise CalibrationError(
            f"Invalid calibration for '{record.device_id}': {'; '.join(problems)}",
            device_id=record.device_id,
        )
