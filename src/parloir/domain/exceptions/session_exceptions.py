"""
Channel session exceptions.
"""

from parloir.domain.exceptions.base import ParloirError


class NotConnectedError(ParloirError):
    """Raised when publishing outside the Connected state."""

    def __init__(self, state: str):
        super().__init__(
            f"Cannot publish while session is {state}",
            code="NOT_CONNECTED",
        )
        self.state = state


class PublishError(ParloirError):
    """Raised when the transport rejects an outgoing message."""

    def __init__(self, message: str = "Publish failed"):
        super().__init__(message, code="PUBLISH_ERROR")


class TransportError(ParloirError):
    """Raised when the realtime transport cannot connect or subscribe."""

    def __init__(self, message: str, recoverable: bool = False):
        """
        Initialize TransportError.

        Args:
            message: Error message
            recoverable: Whether the transport will retry on its own
        """
        super().__init__(message, code="TRANSPORT_ERROR")
        self.recoverable = recoverable
