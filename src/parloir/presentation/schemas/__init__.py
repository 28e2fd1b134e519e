"""
Request/Response schemas for Parloir API.
"""

from parloir.presentation.schemas.health import HealthResponse, LivenessResponse
from parloir.presentation.schemas.token import ErrorResponse

__all__ = ["ErrorResponse", "HealthResponse", "LivenessResponse"]
