from __future__ import annotations

from fastapi import HTTPException

from .core.pipeline.coordinator import IngestionCoordinator
from .core.service import get_service


def get_coordinator() -> IngestionCoordinator:
    service = get_service()
    if service is None or service.coordinator is None:
        raise HTTPException(status_code=503, detail="pipeline not started")
    return service.coordinator
