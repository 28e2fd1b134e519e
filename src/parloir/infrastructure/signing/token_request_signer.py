"""
Ably token request signer.

Produces the token request the broker's client library exchanges for an
access token. Signing is done locally by the Ably SDK; no network round
trip is needed.
"""

from typing import Dict, List, Optional

from ably import AblyRest

from parloir.domain import Credential
from parloir.infrastructure.signing.base import CredentialSigner


class TokenRequestSigner(CredentialSigner):
    """Signs token requests with AblyRest.auth.create_token_request."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        # Lazy initialization
        self._rest: Optional[AblyRest] = None

    @property
    def rest(self) -> AblyRest:
        """
        Get or create the Ably REST client.

        Returns:
            AblyRest instance bound to the API key
        """
        if self._rest is None:
            self._rest = AblyRest(f"{self.key_name}:{self._key_secret}")
        return self._rest

    async def sign(
        self,
        identity: str,
        capability: Dict[str, List[str]],
        ttl_ms: int,
    ) -> Credential:
        token_request = await self.rest.auth.create_token_request(
            token_params={
                "client_id": identity,
                "capability": capability,
                "ttl": ttl_ms,
                "timestamp": self.clock(),
            }
        )

        return Credential(
            identity=token_request.client_id,
            capability=capability,
            issued_at=token_request.timestamp,
            expires_at=token_request.timestamp + token_request.ttl,
            key_name=token_request.key_name,
            nonce=token_request.nonce,
            mac=token_request.mac,
            signed_capability=token_request.capability,
        )
