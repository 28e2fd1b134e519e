"""
Schemas for health endpoints.
"""

from pydantic import BaseModel, Field


class LivenessResponse(BaseModel):
    """Liveness probe response."""

    alive: bool = Field(..., description="Service liveness status")
    uptime_seconds: float = Field(..., description="Server uptime in seconds")


class HealthResponse(BaseModel):
    """
    Readiness/health response.

    Never includes the API key; only whether one is configured.
    """

    status: str = Field(..., description="healthy or degraded")
    ready: bool = Field(..., description="Token endpoint can issue credentials")
    uptime_seconds: float = Field(..., description="Server uptime in seconds")
    version: str = Field(..., description="Service version")
    room: str = Field(..., description="Room issued credentials are scoped to")
    api_key_configured: bool = Field(..., description="Broker API key present")
    credentials_issued: int = Field(..., description="Credentials issued since start")
    issuance_failures: int = Field(..., description="Failed issuance attempts")
