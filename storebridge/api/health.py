"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from storebridge.api.dependencies import ContainerDep

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ContainerDep) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storebridge",
        version=container.settings.api_version,
    )


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Check the process is serving requests."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness_check(container: ContainerDep) -> JSONResponse:
    """Check if service is ready to accept requests.

    Returns:
        200 when storage answers, 503 otherwise.
    """
    try:
        await container.check_ready()
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": str(e)},
        )
    return JSONResponse(content={"status": "ready"})
