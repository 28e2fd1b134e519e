"""
Channel-related exceptions.
"""

from parloir.domain.exceptions.base import ParloirError


class InvalidChannelNameError(ParloirError, ValueError):
    """Raised when channel name is invalid."""

    def __init__(self, channel_name: str, reason: str):
        """
        Initialize InvalidChannelNameError.

        Args:
            channel_name: Invalid channel name
            reason: Reason why name is invalid
        """
        super().__init__(
            f"Invalid channel name '{channel_name}': {reason}",
            code="INVALID_CHANNEL_NAME",
        )
        self.channel_name = channel_name
        self.reason = reason
