"""
Realtime transport contract.

ChannelSession talks to the broker only through these interfaces, so any
broker client (hosted service SDK, WebSocket, in-memory) can be plugged in.
The transport owns reconnection and backoff; it reports what happened via
state-change notifications and asks for credentials through the provider
it was opened with.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from parloir.domain import Credential
from parloir.domain.exceptions import TransportError

CredentialProvider = Callable[[], Awaitable[Credential]]
InboundHandler = Callable[[Mapping[str, Any]], None]


class TransportStatus(str, Enum):
    """Connection status reported by a transport."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"  # recoverable, transport is retrying
    FAILED = "failed"  # unrecoverable
    CLOSED = "closed"


@dataclass(frozen=True)
class TransportStateChange:
    """
    Notification emitted by a connection handle.

    Attributes:
        status: New connection status
        resumed: On CONNECTED after a drop, whether the broker kept the
            previous subscriptions
        error: Cause of a DISCONNECTED/FAILED change, if known
    """

    status: TransportStatus
    resumed: bool = False
    error: Optional[TransportError] = None


StateListener = Callable[[TransportStateChange], None]


class RealtimeChannel(ABC):
    """Named channel on an open connection."""

    name: str

    @abstractmethod
    async def subscribe(self, handler: InboundHandler) -> None:
        """
        Subscribe to the channel; returns once the broker acknowledged.

        Broker events are passed to handler in delivery order as mappings
        with id, name, data and timestamp keys.

        Raises:
            TransportError: If the subscription is refused
        """

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering events to the subscribed handler."""

    @abstractmethod
    async def publish(self, event: Dict[str, Any]) -> None:
        """
        Publish {name, data}; returns once the transport confirmed the send.

        Raises:
            TransportError: If the transport rejects the message
        """


class ConnectionHandle(ABC):
    """Live connection returned by RealtimeTransport.open()."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True while the connection is established."""

    @abstractmethod
    def channel(self, name: str) -> RealtimeChannel:
        """Get (or create) the channel handle for name."""

    @abstractmethod
    def on_state_change(self, listener: StateListener) -> None:
        """Register a listener for connection status changes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release all channels."""


class RealtimeTransport(ABC):
    """Factory for broker connections."""

    @abstractmethod
    async def open(self, credential_provider: CredentialProvider) -> ConnectionHandle:
        """
        Open a connection.

        The provider is called for the initial credential and again
        whenever the transport needs to renew it.

        Raises:
            TransportError: If the connection cannot be established
        """
