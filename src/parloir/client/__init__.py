"""
Parloir chat client.

ChannelSession drives one room over a pluggable realtime transport and
fetches its credentials from the token endpoint via TokenIssuerClient.
"""

from parloir.client.channel_session import ChannelSession
from parloir.client.connection_state import ConnectionState
from parloir.client.in_memory_transport import (
    InMemoryBroker,
    InMemoryChannel,
    InMemoryConnection,
    InMemoryTransport,
)
from parloir.client.issuer_client import TokenIssuerClient
from parloir.client.transport import (
    ConnectionHandle,
    RealtimeChannel,
    RealtimeTransport,
    TransportStateChange,
    TransportStatus,
)

__all__ = [
    "ChannelSession",
    "ConnectionHandle",
    "ConnectionState",
    "InMemoryBroker",
    "InMemoryChannel",
    "InMemoryConnection",
    "InMemoryTransport",
    "RealtimeChannel",
    "RealtimeTransport",
    "TokenIssuerClient",
    "TransportStateChange",
    "TransportStatus",
]
