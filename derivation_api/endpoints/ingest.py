"""Ingesta HTTP de lecturas crudas (misma frontera de validación que MQTT)."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from ..core.pipeline.coordinator import IngestionCoordinator
from ..dependencies import get_coordinator
from ..schemas import IngestResult

router = APIRouter(tags=["ingest"])


@router.post("/ingest", response_model=IngestResult, status_code=202)
def ingest_raw_reading(
    payload: Dict[str, Any] = Body(...),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Valida y encola una lectura cruda.

    422 si el payload es inválido; 202 si quedó encolada. Un 202 con
    accepted=false indica que la cola del dispositivo estaba llena.
    """
    result, accepted = coordinator.admit_payload(payload)
    if not result.valid:
        raise HTTPException(status_code=422, detail=result.error)

    return IngestResult(
        accepted=accepted,
        device_id=result.reading.device_id,
        warnings=result.warnings,
    )
