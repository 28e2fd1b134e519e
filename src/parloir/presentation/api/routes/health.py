"""
Health check API routes.

Liveness and readiness probes.
"""

from fastapi import APIRouter, Depends, Response, status

from parloir.di import Container
from parloir.presentation.api.dependencies import get_container
from parloir.presentation.schemas import HealthResponse, LivenessResponse

router = APIRouter(tags=["health"])


@router.get("/health/live", response_model=LivenessResponse)
def liveness_probe(container: Container = Depends(get_container)):
    """
    Liveness probe endpoint.

    Returns 200 while the process is serving requests.
    """
    return LivenessResponse(
        alive=True,
        uptime_seconds=container.get_uptime_seconds(),
    )


@router.get("/health/ready", response_model=HealthResponse)
def readiness_probe(
    response: Response,
    container: Container = Depends(get_container),
):
    """
    Readiness probe endpoint.

    Returns 200 when credentials can be issued, 503 when the API key is
    missing.
    """
    settings = container.settings
    ready = settings.api_key_configured

    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if ready else "degraded",
        ready=ready,
        uptime_seconds=container.get_uptime_seconds(),
        version=settings.APP_VERSION,
        room=settings.room,
        api_key_configured=ready,
        credentials_issued=container.stats["credentials_issued"],
        issuance_failures=container.stats["issuance_failures"],
    )


@router.get("/health", response_model=HealthResponse)
def health_check_endpoint(
    response: Response,
    container: Container = Depends(get_container),
):
    """
    General health check endpoint (alias for readiness).
    """
    return readiness_probe(response, container)
