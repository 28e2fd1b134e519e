"""
Global error handling middleware.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from parloir.domain.exceptions import (
    ConfigurationError,
    IssuanceError,
    ParloirError,
)

STATUS_CODE_MAP = {
    "CONFIGURATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "ISSUANCE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "INVALID_CHANNEL_NAME": status.HTTP_400_BAD_REQUEST,
}

GENERIC_ERROR = "Internal server error"


def public_message(exc: ParloirError) -> str:
    """
    Message safe to show to an unauthenticated client.

    Configuration errors name the missing field, never its value; issuance
    errors always use the issuer's generic message.
    """
    if isinstance(exc, ConfigurationError):
        if exc.reason == "not set":
            return f"{exc.field} not set"
        return "Server configuration error"
    if isinstance(exc, IssuanceError):
        return "Failed to create token"
    return exc.message


async def parloir_exception_handler(
    request: Request, exc: ParloirError
) -> JSONResponse:
    """
    Handle Parloir domain exceptions.

    Converts domain exceptions to {"error": message} JSON responses.
    """
    status_code = STATUS_CODE_MAP.get(
        exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    return JSONResponse(
        status_code=status_code,
        content={"error": public_message(exc)},
        headers={"Cache-Control": "no-store"},
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Last-resort handler: generic 500 without internal detail."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": GENERIC_ERROR},
    )
