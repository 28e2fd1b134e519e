"""
JWT credential signer.

Encodes an HS256 JWT the broker accepts in place of a token: the key name
goes in the "kid" header, capability and client id in broker-specific
claims.
"""

import json
from typing import Dict, List

import jwt

from parloir.domain import Credential
from parloir.infrastructure.signing.base import CredentialSigner

CAPABILITY_CLAIM = "x-ably-capability"
CLIENT_ID_CLAIM = "x-ably-clientId"


def capability_json(capability: Dict[str, List[str]]) -> str:
    """Serialize a capability mapping as compact JSON for the claim."""
    return json.dumps(capability, separators=(",", ":"))


class JwtTokenSigner(CredentialSigner):
    """
    Signs broker JWTs with PyJWT.

    Attributes:
        algorithm: JWT algorithm (default: HS256)
    """

    algorithm = "HS256"

    async def sign(
        self,
        identity: str,
        capability: Dict[str, List[str]],
        ttl_ms: int,
    ) -> Credential:
        # JWT times have second precision
        issued_s = self.clock() // 1000
        expires_s = issued_s + max(1, ttl_ms // 1000)

        token = jwt.encode(
            {
                "iat": issued_s,
                "exp": expires_s,
                CAPABILITY_CLAIM: capability_json(capability),
                CLIENT_ID_CLAIM: identity,
            },
            self._key_secret,
            algorithm=self.algorithm,
            headers={"kid": self.key_name},
        )

        return Credential(
            identity=identity,
            capability=capability,
            issued_at=issued_s * 1000,
            expires_at=expires_s * 1000,
            key_name=self.key_name,
            token=token,
        )

    def decode(self, token: str) -> dict:
        """
        Verify and decode a token signed by this signer.

        Raises:
            jwt.ExpiredSignatureError: If the token has expired
            jwt.InvalidTokenError: If the token is invalid
        """
        return jwt.decode(token, self._key_secret, algorithms=[self.algorithm])
