"""
Schemas for the token endpoint.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Error body returned by every failing Parloir endpoint.

    Carries a generic message only; internal detail stays in server logs.
    """

    error: str = Field(..., description="Human readable error message")
