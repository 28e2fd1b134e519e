"""
Credential signing.
"""

from parloir.infrastructure.signing.base import CredentialSigner
from parloir.infrastructure.signing.jwt_signer import JwtTokenSigner, capability_json
from parloir.infrastructure.signing.token_request_signer import TokenRequestSigner

__all__ = [
    "CredentialSigner",
    "JwtTokenSigner",
    "TokenRequestSigner",
    "capability_json",
]
