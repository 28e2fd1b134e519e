"""
Domain exceptions for Parloir.
"""

from parloir.domain.exceptions.base import ParloirError
from parloir.domain.exceptions.channel_exceptions import InvalidChannelNameError
from parloir.domain.exceptions.issuance_exceptions import (
    ConfigurationError,
    CredentialExpiredError,
    IssuanceError,
)
from parloir.domain.exceptions.session_exceptions import (
    NotConnectedError,
    PublishError,
    TransportError,
)

__all__ = [
    "ParloirError",
    "ConfigurationError",
    "IssuanceError",
    "CredentialExpiredError",
    "InvalidChannelNameError",
    "NotConnectedError",
    "PublishError",
    "TransportError",
]
