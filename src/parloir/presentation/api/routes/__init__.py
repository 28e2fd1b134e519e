"""
API routes for Parloir.
"""

from parloir.presentation.api.routes.health import router as health_router
from parloir.presentation.api.routes.token import router as token_router

__all__ = ["health_router", "token_router"]
