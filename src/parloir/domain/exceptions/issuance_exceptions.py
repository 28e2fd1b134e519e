"""
Credential issuance exceptions.
"""

from parloir.domain.exceptions.base import ParloirError


class ConfigurationError(ParloirError):
    """Raised when a required configuration value is missing or invalid."""

    def __init__(self, field: str, reason: str = "not set"):
        """
        Initialize ConfigurationError.

        Args:
            field: Name of the offending configuration field
            reason: Why the value is unusable
        """
        super().__init__(f"{field} {reason}", code="CONFIGURATION_ERROR")
        self.field = field
        self.reason = reason


class IssuanceError(ParloirError):
    """Raised when a credential could not be issued or fetched."""

    def __init__(self, message: str = "Failed to create token"):
        super().__init__(message, code="ISSUANCE_ERROR")


class CredentialExpiredError(IssuanceError):
    """Raised when a credential is already expired at the point of use."""

    def __init__(self, identity: str, expires_at: int):
        super().__init__(
            f"Credential for {identity} expired at {expires_at}"
        )
        self.identity = identity
        self.expires_at = expires_at
