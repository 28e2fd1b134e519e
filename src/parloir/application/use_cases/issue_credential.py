"""
Use case for issuing scoped broker credentials.
"""

import random
from typing import Optional

from parloir.config import IssuerConfig
from parloir.domain import Credential, room_capability
from parloir.domain.exceptions import IssuanceError
from parloir.infrastructure.signing import CredentialSigner
from parloir.reporter import SystemReporter

IDENTITY_SUFFIX_RANGE = 10000


class TokenIssuer:
    """
    Mints short-lived, room-scoped credentials for anonymous clients.

    Stateless between calls: every issue() generates a fresh identity and
    a fresh signature. The only long-lived material is the signer's key,
    which never leaves the signer.
    """

    def __init__(
        self,
        config: IssuerConfig,
        signer: CredentialSigner,
        reporter: Optional[SystemReporter] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize issuer.

        Args:
            config: Validated issuer configuration
            signer: Credential signer holding the key secret
            reporter: Optional reporter for failure logging
            rng: Random source for identities (seedable in tests)
        """
        self.config = config
        self.signer = signer
        self.reporter = reporter
        self.rng = rng or random.Random()

    def new_identity(self) -> str:
        """Generate an anonymous identity: "<prefix>-<0..9999>"."""
        suffix = self.rng.randrange(IDENTITY_SUFFIX_RANGE)
        return f"{self.config.client_id_prefix}-{suffix}"

    async def issue(self) -> Credential:
        """
        Issue a credential for a new anonymous identity.

        Returns:
            Signed Credential scoped to subscribe+publish on the room

        Raises:
            IssuanceError: If signing fails (detail is logged, not raised)
        """
        identity = self.new_identity()

        try:
            credential = await self.signer.sign(
                identity=identity,
                capability=room_capability(self.config.room),
                ttl_ms=self.config.ttl_seconds * 1000,
            )
        except Exception as e:
            if self.reporter:
                self.reporter.error(
                    f"Signing failed for {identity}: {type(e).__name__}: {e}",
                    context="TokenIssuer",
                    exc_info=True,
                )
            raise IssuanceError() from e

        if self.reporter:
            self.reporter.debug(
                f"Issued {self.config.token_format} for {identity} "
                f"(expires {credential.expires_at})",
                context="TokenIssuer",
                verbose_level=2,
            )

        return credential
