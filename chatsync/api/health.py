"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from chatsync.api.deps import get_messaging_service
from chatsync.core.config import Settings, get_settings
from chatsync.core.logging import get_logger
from chatsync.schemas.message import HealthResponse
from chatsync.services.messaging import MessagingService

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    """
    Liveness probe - always returns 200.

    Used by orchestrators to check if the service is running.
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to handle traffic."
)
async def readiness(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> HealthResponse:
    """
    Readiness probe - checks if the service can handle traffic.

    Checks:
    - Backend store is reachable
    - Inbound SMS webhook secret (reported, not required)
    """
    checks = {}

    store_ok = service.store.ping()
    checks["database"] = "ok" if store_ok else "failed"
    checks["webhook_secret"] = "ok" if settings.is_webhook_secret_configured else "not configured"

    if store_ok:
        return HealthResponse(status="ok", checks=checks)

    logger.warning("Readiness check failed: database not reachable")
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
