"""Observability API endpoints: Prometheus metrics, health and readiness."""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from dependencies import get_lifecycle_manager, get_storage_service
from services.document_storage_service import DocumentStorageService
from services.submission_lifecycle_manager import SubmissionLifecycleManager

from .health import (
    ComponentHealth,
    HealthStatus,
    check_signature_provider_health,
    check_storage_health,
    get_overall_health,
)

router = APIRouter(tags=["Observability"])


def _component_body(component: ComponentHealth) -> dict:
    return {
        "status": component.status.value,
        "message": component.message,
        "latency_ms": component.latency_ms,
    }


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Returns health status of object storage and the e-signature provider",
)
async def health_check(
    storage: DocumentStorageService = Depends(get_storage_service),
    manager: SubmissionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Check health of all system components.

    Returns 200 while the service can accept work (including degraded local
    fallback), 503 if any component is unhealthy.
    """
    components = {
        "object_storage": await check_storage_health(storage),
        "esignature_provider": await check_signature_provider_health(manager),
    }
    overall = get_overall_health(components)

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        if overall == HealthStatus.UNHEALTHY
        else status.HTTP_200_OK,
        content={
            "status": overall.value,
            "components": {name: _component_body(c) for name, c in components.items()},
        },
    )


@router.get("/ready", summary="Readiness check")
async def readiness_check(request: Request):
    """Ready once both services finished initialization; no remote calls."""
    storage = getattr(request.app.state, "storage_service", None)
    manager = getattr(request.app.state, "lifecycle_manager", None)
    waiting = [
        name
        for name, service in (("storage", storage), ("esignature", manager))
        if service is None or not service.initialized
    ]
    if waiting:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "waiting_for": waiting},
        )
    return {"status": "ready"}
