"""Consulta de estado actual: última lectura derivada por dispositivo.

Se sirve desde la cache del coordinador, no se re-deriva desde la BD.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..core.pipeline.coordinator import IngestionCoordinator
from ..dependencies import get_coordinator
from ..schemas import DerivedReadingOut

router = APIRouter(tags=["readings"])


@router.get("/readings", response_model=List[DerivedReadingOut])
def list_latest_readings(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    return [DerivedReadingOut.from_reading(r) for r in coordinator.get_all()]


@router.get("/readings/{device_id}", response_model=DerivedReadingOut)
def get_latest_reading(device_id: str, coordinator: IngestionCoordinator = Depends(get_coordinator)):
    reading = coordinator.get_latest(device_id)
    if reading is None:
        raise HTTPException(status_code=404, detail=f"No readings for device '{device_id}'")
    return DerivedReadingOut.from_reading(reading)
