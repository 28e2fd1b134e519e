"""
Credential issuance endpoint.

Unauthenticated GET that returns a short-lived, room-scoped credential in
the broker client's wire format.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from parloir.di import Container
from parloir.domain.exceptions import ConfigurationError, IssuanceError
from parloir.presentation.api.dependencies import get_container
from parloir.presentation.schemas import ErrorResponse

router = APIRouter(tags=["token"])

TOKEN_PATH = "/api/ably-token"
TOKEN_PATH_ALIAS = "/api/token"


@router.get(TOKEN_PATH, responses={500: {"model": ErrorResponse}})
@router.get(TOKEN_PATH_ALIAS, responses={500: {"model": ErrorResponse}})
async def issue_token(container: Container = Depends(get_container)):
    """
    Issue a credential for a new anonymous client.

    Returns:
        Credential JSON (identity, capability, signature, expiry)

    Raises:
        ConfigurationError: API key missing (mapped to 500)
        IssuanceError: Signing failed (mapped to 500)
    """
    try:
        issuer = container.token_issuer
    except ConfigurationError as e:
        container.increment_stat("configuration_errors")
        container.reporter.error(
            f"Cannot issue credentials: {e.message}",
            context="TokenRoute",
        )
        raise

    try:
        credential = await issuer.issue()
    except IssuanceError:
        container.increment_stat("issuance_failures")
        raise

    container.increment_stat("credentials_issued")

    return JSONResponse(
        content=credential.to_wire(),
        headers={"Cache-Control": "no-store"},
    )
