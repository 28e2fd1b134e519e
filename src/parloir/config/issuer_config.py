"""
Explicit configuration for the token issuer.

Built once from Settings and injected into TokenIssuer, so request
handling never reads the environment itself.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from parloir.config.settings import Settings
from parloir.domain.exceptions import ConfigurationError
from parloir.domain.value_objects import ChannelName


class IssuerConfig(BaseModel):
    """
    Validated issuer configuration.

    Attributes:
        key_name: Public key name sent to the broker with each credential
        key_secret: Long-lived signing secret (never serialized)
        room: Room the issued capability is scoped to
        client_id_prefix: Namespace for anonymous identities
        ttl_seconds: Lifetime of issued credentials
        token_format: "token_request" or "jwt"
    """

    model_config = ConfigDict(frozen=True)

    key_name: str = Field(..., min_length=1)
    key_secret: SecretStr
    room: str
    client_id_prefix: str
    ttl_seconds: int = Field(..., gt=0)
    token_format: Literal["token_request", "jwt"] = "token_request"

    @classmethod
    def from_settings(cls, settings: Settings) -> "IssuerConfig":
        """
        Build issuer configuration from application settings.

        The API key may be "keyName:keySecret" or a bare secret; in the
        latter case settings.api_key_name is used as the key name.

        Args:
            settings: Application settings

        Returns:
            IssuerConfig

        Raises:
            ConfigurationError: If the API key is missing or malformed,
                or the room name is invalid
        """
        if not settings.api_key_configured:
            raise ConfigurationError("ABLY_API_KEY")

        raw_key = settings.ABLY_API_KEY.get_secret_value().strip()
        key_name, sep, key_secret = raw_key.partition(":")
        if not sep:
            key_name, key_secret = settings.api_key_name, raw_key

        if not key_name or not key_secret:
            raise ConfigurationError(
                "ABLY_API_KEY", "must be 'keyName:keySecret' or a bare secret"
            )

        try:
            room = ChannelName(settings.room).value
        except ValueError as e:
            raise ConfigurationError("room", str(e)) from e

        return cls(
            key_name=key_name,
            key_secret=SecretStr(key_secret),
            room=room,
            client_id_prefix=settings.client_id_prefix,
            ttl_seconds=settings.token_ttl_seconds,
            token_format=settings.token_format,
        )
