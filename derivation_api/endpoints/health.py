"""Health, readiness y métricas."""

from fastapi import APIRouter, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..core.service import get_service

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness check: always returns ok if process is running."""
    return {"status": "ok"}


@router.get("/ready")
def ready():
    """Readiness check: pipeline arrancado y consumiendo."""
    service = get_service()
    if service is None or service.health is None:
        raise HTTPException(status_code=503, detail="not ready")

    status = service.health.get_status()
    if not status.healthy:
        raise HTTPException(status_code=503, detail=status.to_dict())
    return {"status": "ready", **status.to_dict()}


@router.get("/stats")
def stats():
    """Contadores del coordinador y del transporte."""
    service = get_service()
    if service is None or service.coordinator is None:
        raise HTTPException(status_code=503, detail="pipeline not started")
    return {
        "coordinator": service.coordinator.stats,
        "transport": service.handler.stats if service.handler else None,
        "mqtt": service.mqtt.stats if service.mqtt else None,
    }


@router.get("/metrics")
def metrics():
    """Métricas Prometheus."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
