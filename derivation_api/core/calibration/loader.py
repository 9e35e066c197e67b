"""Carga de calibraciones desde archivo JSON y recarga en caliente.

Formato del archivo:
{
    "devices": [
        {"deviceId": "tank-01", "capacity": 5000, "mappings": {...}, ...}
    ]
}
También se acepta una lista de registros en la raíz.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Union

from ..domain.calibration import CalibrationRecord
from ..domain.errors import CalibrationError
from .store import CalibrationStore

logger = logging.getLogger(__name__)


def load_calibration_file(path: Union[str, Path]) -> List[CalibrationRecord]:
    """Lee y parsea un archivo de calibraciones.

    Raises:
        CalibrationError: si el archivo no se puede leer o un registro es inválido
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise CalibrationError(f"Cannot read calibration file {path}: {e}") from e

    entries = data.get("devices", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise CalibrationError(f"Calibration file {path} must contain a list of devices")

    records = []
    for i, entry in enumerate(entries):
        try:
            records.append(CalibrationRecord.from_dict(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CalibrationError(f"Malformed calibration entry #{i} in {path}: {e}") from e
    return records


def reload_from_file(store: CalibrationStore, path: Union[str, Path]) -> int:
    """Carga el archivo y reemplaza el contenido del store.

    Returns:
        Versión publicada
    """
    records = load_calibration_file(path)
    return store.replace_all(records)


class CalibrationFileWatcher:
    """Recarga el store cuando cambia el mtime del archivo.

    Un archivo inválido se registra y se ignora: el snapshot vigente
    sigue en uso hasta la siguiente modificación válida.
    """

    def __init__(
        self,
        path: Union[str, Path],
        store: CalibrationStore,
        interval_seconds: float = 5.0,
    ):
        self._path = Path(path)
        self._store = store
        self._interval = interval_seconds
        self._last_mtime: Optional[float] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def check(self) -> bool:
        """Recarga si el archivo cambió. Retorna True si se recargó."""
        try:
            mtime = os.stat(self._path).st_mtime
        except OSError as e:
            logger.warning("[CALIBRATION] Cannot stat %s: %s", self._path, e)
            return False

        if self._last_mtime is not None and mtime == self._last_mtime:
            return False
        self._last_mtime = mtime

        try:
            version = reload_from_file(self._store, self._path)
        except CalibrationError as e:
            logger.error("[CALIBRATION] Reload rejected, keeping current snapshot: %s", e)
            return False

        logger.info("[CALIBRATION] Reloaded %s version=%d", self._path, version)
        return True

    def start(self) -> None:
        self.check()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="calibration-watcher",
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.check()
