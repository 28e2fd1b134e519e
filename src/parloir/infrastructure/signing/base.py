"""
Credential signer interface.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List

from parloir.domain import Credential, now_ms


class CredentialSigner(ABC):
    """
    Signs room-scoped credentials with the long-lived API key.

    Implementations hold the key secret and must never place it in the
    returned Credential.

    Attributes:
        key_name: Public half of the API key
        clock: Millisecond clock, injectable for tests
    """

    def __init__(
        self,
        key_name: str,
        key_secret: str,
        clock: Callable[[], int] = now_ms,
    ):
        self.key_name = key_name
        self._key_secret = key_secret
        self.clock = clock

    @abstractmethod
    async def sign(
        self,
        identity: str,
        capability: Dict[str, List[str]],
        ttl_ms: int,
    ) -> Credential:
        """
        Produce a signed credential.

        Args:
            identity: Client id to bind the credential to
            capability: Granted scope
            ttl_ms: Lifetime in milliseconds

        Returns:
            Signed Credential
        """
