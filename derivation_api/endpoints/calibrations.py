"""Interfaz de configuración de calibraciones (recarga en caliente)."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from ..core.domain.errors import CalibrationError
from ..core.pipeline.coordinator import IngestionCoordinator
from ..dependencies import get_coordinator
from ..schemas import CalibrationIn, CalibrationOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["calibrations"])


@router.get("/calibrations", response_model=List[CalibrationOut])
def list_calibrations(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    records = coordinator.store.snapshot().records
    return [CalibrationOut.from_record(records[k]) for k in sorted(records)]


@router.get("/calibrations/{device_id}", response_model=CalibrationOut)
def get_calibration(device_id: str, coordinator: IngestionCoordinator = Depends(get_coordinator)):
    record = coordinator.store.get(device_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No calibration for device '{device_id}'")
    return CalibrationOut.from_record(record)


@router.put("/calibrations/{device_id}", response_model=CalibrationOut)
def upsert_calibration(
    device_id: str,
    body: CalibrationIn,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    try:
        stored = coordinator.upsert_calibration(body.to_record(device_id))
    except CalibrationError as e:
        logger.warning("[API] Rejected calibration device=%s: %s", device_id, e)
        raise HTTPException(status_code=422, detail=str(e))
    return CalibrationOut.from_record(stored)


@router.delete("/calibrations/{device_id}", status_code=204)
def remove_calibration(device_id: str, coordinator: IngestionCoordinator = Depends(get_coordinator)):
    if not coordinator.remove_calibration(device_id):
        raise HTTPException(status_code=404, detail=f"No calibration for device '{device_id}'")
    return Response(status_code=204)
