"""
Connection state of a ChannelSession.
"""

from enum import Enum


class ConnectionState(str, Enum):
    """
    Lifecycle states.

    Idle -> Connecting -> Connected <-> Suspended, any -> Closed, and
    Failed when issuance or the transport fails unrecoverably.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUSPENDED = "suspended"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.FAILED)
