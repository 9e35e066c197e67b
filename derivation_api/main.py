from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.service import start_service, stop_service
from .endpoints import calibrations_router, health_router, ingest_router, readings_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # DERIVATION_AUTOSTART=0 deja el pipeline sin arrancar (tests, tooling)
    autostart = os.getenv("DERIVATION_AUTOSTART", "1").strip() != "0"
    if autostart:
        start_service()
    try:
        yield
    finally:
        if autostart:
            stop_service()


app = FastAPI(title="Sensor Derivation Service", version="0.1.0", lifespan=lifespan)

app.include_router(health_router)
app.include_router(readings_router)
app.include_router(calibrations_router)
app.include_router(ingest_router)
