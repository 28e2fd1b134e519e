"""
HTTP client for the Parloir token endpoint.

Fetches credentials for ChannelSession, both for the first connection and
for renewals requested by the transport.
"""

import asyncio
import logging
from typing import Optional

import httpx

from parloir.domain import Credential
from parloir.domain.exceptions import IssuanceError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = "/api/ably-token"


class TokenIssuerClient:
    """
    Async HTTP client for the token endpoint.

    Network failures (timeouts, refused connections) are retried with
    exponential backoff; HTTP error responses are not, since the server
    answers 500 for configuration problems that retrying cannot fix.

    Attributes:
        base_url: Base URL of the Parloir server
        token_path: Path of the token endpoint
        timeout: HTTP request timeout in seconds
        max_retries: Maximum attempts per issue() call

    Examples:
        async with TokenIssuerClient("http://localhost:8780") as issuer:
            session = ChannelSession("parloir-chat", issuer.issue, transport)
            await session.start()
    """

    def __init__(
        self,
        base_url: str,
        token_path: str = DEFAULT_TOKEN_PATH,
        timeout: float = 5.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize issuer client.

        Args:
            base_url: Base URL of the server (e.g., "http://localhost:8780")
            token_path: Token endpoint path
            timeout: HTTP request timeout in seconds
            max_retries: Maximum attempts for network failures
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token_path = token_path
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport

        # Lazy initialization
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """
        Get or create async HTTP client.

        Returns:
            Async HTTP client instance
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    @property
    def token_url(self) -> str:
        return f"{self.base_url}{self.token_path}"

    async def issue(self) -> Credential:
        """
        Fetch a fresh credential.

        Returns:
            Parsed Credential

        Raises:
            IssuanceError: On error responses, malformed bodies, or when
                every attempt failed at the network level
        """
        url = self.token_url

        for attempt in range(self.max_retries):
            try:
                response = await self.client.get(url)
            except httpx.TimeoutException:
                logger.warning(
                    f"Token request timeout "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.TransportError as e:
                logger.warning(
                    f"Token request to {url} failed: {e} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            else:
                return self._parse(response)

            # Wait before retry (exponential backoff)
            if attempt < self.max_retries - 1:
                await asyncio.sleep(0.1 * (2**attempt))

        raise IssuanceError(
            f"Token endpoint unreachable after {self.max_retries} attempts"
        )

    def _parse(self, response: httpx.Response) -> Credential:
        """
        Convert a token endpoint response into a Credential.

        Raises:
            IssuanceError: If the response is an error or malformed
        """
        if response.status_code != 200:
            message = "Failed to fetch token"
            try:
                message = response.json().get("error", message)
            except (ValueError, AttributeError):
                pass
            logger.error(f"Token endpoint returned {response.status_code}: {message}")
            raise IssuanceError(message)

        try:
            return Credential.from_wire(response.json())
        except (ValueError, TypeError) as e:
            logger.error(f"Malformed credential from token endpoint: {e}")
            raise IssuanceError("Malformed credential") from e

    async def close(self) -> None:
        """Close async HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Token client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
