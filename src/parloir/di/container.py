"""
Dependency Injection container for Parloir.

Manages lifecycle and dependencies of server-side components.
"""

from datetime import datetime, timezone
from typing import Optional

from parloir.application.use_cases import TokenIssuer
from parloir.config import IssuerConfig, Settings
from parloir.infrastructure.signing import (
    CredentialSigner,
    JwtTokenSigner,
    TokenRequestSigner,
)
from parloir.reporter import SystemReporter


class Container:
    """
    Dependency Injection container.

    Creates and caches the token issuer. The issuer is built on first use,
    so a missing API key surfaces as ConfigurationError on the request that
    needs it rather than at process start.
    """

    def __init__(
        self,
        settings: Settings,
        reporter: Optional[SystemReporter] = None,
        signer: Optional[CredentialSigner] = None,
    ):
        """
        Initialize container with settings.

        Args:
            settings: Application settings
            reporter: Optional SystemReporter (created if omitted)
            signer: Optional signer override (tests, alternative brokers)
        """
        self.settings = settings
        self.reporter = reporter or SystemReporter(
            name="parloir", level=settings.log_level
        )

        self._signer_override = signer
        self._issuer_config: Optional[IssuerConfig] = None
        self._token_issuer: Optional[TokenIssuer] = None

        # Statistics
        self.stats = {
            "credentials_issued": 0,
            "issuance_failures": 0,
            "configuration_errors": 0,
            "start_time": datetime.now(timezone.utc),
        }

    @property
    def issuer_config(self) -> IssuerConfig:
        """
        Get validated IssuerConfig singleton.

        Raises:
            ConfigurationError: If the API key is missing or malformed
        """
        if self._issuer_config is None:
            self._issuer_config = IssuerConfig.from_settings(self.settings)
        return self._issuer_config

    @property
    def token_issuer(self) -> TokenIssuer:
        """
        Get TokenIssuer singleton.

        Raises:
            ConfigurationError: If the issuer cannot be configured
        """
        if self._token_issuer is None:
            config = self.issuer_config
            self._token_issuer = TokenIssuer(
                config=config,
                signer=self._signer_override or self._create_signer(config),
                reporter=self.reporter,
            )
        return self._token_issuer

    def _create_signer(self, config: IssuerConfig) -> CredentialSigner:
        """
        Create the signer matching the configured token format.

        Args:
            config: Issuer configuration

        Returns:
            CredentialSigner instance
        """
        signer_cls = JwtTokenSigner if config.token_format == "jwt" else TokenRequestSigner
        return signer_cls(
            key_name=config.key_name,
            key_secret=config.key_secret.get_secret_value(),
        )

    def increment_stat(self, stat_name: str, amount: int = 1) -> None:
        """
        Increment a statistic counter.

        Args:
            stat_name: Name of statistic to increment
            amount: Amount to increment by
        """
        if stat_name in self.stats:
            self.stats[stat_name] += amount

    def get_uptime_seconds(self) -> float:
        """
        Get server uptime in seconds.

        Returns:
            Uptime in seconds
        """
        return (datetime.now(timezone.utc) - self.stats["start_time"]).total_seconds()
