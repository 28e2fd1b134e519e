"""
In-memory broker and transport.

Single-process only. Useful for local development and tests: it fans out
every published event to all subscribers (sender included), buffers events
for connections that dropped and replays them on resume, checks credential
scope and expiry, and lets callers drive drops, resumes, failures and
credential renewal deterministically.
"""

import itertools
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from parloir.client.transport import (
    ConnectionHandle,
    CredentialProvider,
    InboundHandler,
    RealtimeChannel,
    RealtimeTransport,
    StateListener,
    TransportStateChange,
    TransportStatus,
)
from parloir.domain import Credential, now_ms
from parloir.domain.exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_MARGIN_MS = 30_000


class InMemoryBroker:
    """
    Channel fan-out shared by all in-memory connections.

    Delivery to each subscriber follows publish order. Message ids are
    unique per broker.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock
        self._serial = itertools.count(1)
        self._subscribers: Dict[str, List["InMemoryConnection"]] = {}

    def subscribe(self, channel: str, connection: "InMemoryConnection") -> None:
        subscribers = self._subscribers.setdefault(channel, [])
        if connection not in subscribers:
            subscribers.append(connection)

    def unsubscribe(self, channel: str, connection: "InMemoryConnection") -> None:
        subscribers = self._subscribers.get(channel, [])
        if connection in subscribers:
            subscribers.remove(connection)
        if not subscribers:
            self._subscribers.pop(channel, None)

    def detach(self, connection: "InMemoryConnection") -> None:
        """Remove a connection from every channel."""
        for channel in list(self._subscribers):
            self.unsubscribe(channel, connection)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def publish(
        self,
        channel: str,
        event: Mapping[str, Any],
        sender: "InMemoryConnection",
    ) -> Dict[str, Any]:
        """
        Stamp an event with id and timestamp and deliver it.

        Returns:
            The delivered broker message
        """
        message = {
            "id": f"msg-{next(self._serial)}",
            "name": event.get("name"),
            "data": event.get("data"),
            "timestamp": self.clock(),
            "clientId": sender.credential.identity,
        }

        for connection in list(self._subscribers.get(channel, [])):
            connection.deliver(channel, message)

        return message


class InMemoryChannel(RealtimeChannel):
    """Channel handle bound to one in-memory connection."""

    def __init__(self, name: str, connection: "InMemoryConnection"):
        self.name = name
        self._connection = connection
        self.handler: Optional[InboundHandler] = None
        self.subscribe_calls = 0
        self.publish_calls = 0

    async def subscribe(self, handler: InboundHandler) -> None:
        self.subscribe_calls += 1
        self._connection.require(self.name, "subscribe")

        self.handler = handler
        self._connection.broker.subscribe(self.name, self._connection)

    async def unsubscribe(self) -> None:
        self.handler = None
        self._connection.broker.unsubscribe(self.name, self._connection)

    async def publish(self, event: Dict[str, Any]) -> None:
        self.publish_calls += 1
        self._connection.require(self.name, "publish")
        self._connection.broker.publish(self.name, event, self._connection)


class InMemoryConnection(ConnectionHandle):
    """
    Connection to an InMemoryBroker.

    Simulation controls: drop(), reconnect(resume=...), fail(), and
    renew_if_due() for credential renewal against the injected clock.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        broker: InMemoryBroker,
        credential_provider: CredentialProvider,
        credential: Credential,
        clock: Callable[[], int] = now_ms,
        renewal_margin_ms: int = DEFAULT_RENEWAL_MARGIN_MS,
    ):
        self.id = f"conn-{next(self._ids)}"
        self.broker = broker
        self.credential = credential
        self.clock = clock
        self.renewal_margin_ms = renewal_margin_ms
        self.status = TransportStatus.CONNECTED
        self.renewals = 0
        self.close_calls = 0

        self._provider = credential_provider
        self._listeners: List[StateListener] = []
        self._channels: Dict[str, InMemoryChannel] = {}
        self._buffer: List[tuple] = []

    @property
    def is_connected(self) -> bool:
        return self.status is TransportStatus.CONNECTED

    def channel(self, name: str) -> InMemoryChannel:
        if name not in self._channels:
            self._channels[name] = InMemoryChannel(name, self)
        return self._channels[name]

    def on_state_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def close(self) -> None:
        self.close_calls += 1
        if self.status is TransportStatus.CLOSED:
            return

        self.broker.detach(self)
        self._buffer.clear()
        self._set_status(TransportStateChange(TransportStatus.CLOSED))

    def require(self, channel: str, operation: str) -> None:
        """
        Check the connection may perform operation on channel.

        Raises:
            TransportError: If disconnected, expired or out of scope
        """
        if not self.is_connected:
            raise TransportError(
                f"Connection {self.id} is {self.status.value}", recoverable=True
            )
        if self.credential.is_expired(self.clock()):
            raise TransportError(f"Credential for {self.id} has expired")
        if not self.credential.allows(channel, operation):
            raise TransportError(
                f"Credential does not grant {operation} on '{channel}'"
            )

    def deliver(self, channel: str, message: Dict[str, Any]) -> None:
        """Hand a broker message to the subscriber, buffering while dropped."""
        if self.status is TransportStatus.DISCONNECTED:
            self._buffer.append((channel, message))
            return

        handle = self._channels.get(channel)
        if self.is_connected and handle is not None and handle.handler is not None:
            handle.handler(message)

    # ================================================================
    # Simulation controls
    # ================================================================

    def drop(self, reason: str = "connection lost") -> None:
        """Simulate a recoverable network drop."""
        if not self.is_connected:
            return
        self._set_status(
            TransportStateChange(
                TransportStatus.DISCONNECTED,
                error=TransportError(reason, recoverable=True),
            )
        )

    async def reconnect(self, resume: bool = True) -> None:
        """
        Re-establish a dropped connection.

        Args:
            resume: Keep subscriptions and replay buffered events. When
                False the broker forgets subscriptions and buffered events.
        """
        if self.status is not TransportStatus.DISCONNECTED:
            return

        if not await self.renew_if_due():
            return

        if not resume:
            self.broker.detach(self)
            for handle in self._channels.values():
                handle.handler = None
            self._buffer.clear()

        self._set_status(
            TransportStateChange(TransportStatus.CONNECTED, resumed=resume)
        )

        pending, self._buffer = self._buffer, []
        for channel, message in pending:
            self.deliver(channel, message)

    def fail(self, reason: str = "connection failed") -> None:
        """Simulate an unrecoverable failure."""
        if self.status in (TransportStatus.FAILED, TransportStatus.CLOSED):
            return
        self.broker.detach(self)
        self._buffer.clear()
        self._set_status(
            TransportStateChange(TransportStatus.FAILED, error=TransportError(reason))
        )

    async def renew_if_due(self) -> bool:
        """
        Renew the credential through the provider when it nears expiry.

        A failed renewal keeps the current credential while it is still
        valid; once it has expired the connection fails.

        Returns:
            True if the connection still holds a valid credential
        """
        if not self.credential.expires_within(self.renewal_margin_ms, self.clock()):
            return True

        try:
            fresh = await self._provider()
        except Exception as e:
            logger.warning(f"Credential renewal failed on {self.id}: {e}")
            if self.credential.is_expired(self.clock()):
                self.fail("credential expired and renewal failed")
                return False
            return True

        if fresh.is_expired(self.clock()):
            logger.warning(f"Provider returned an expired credential on {self.id}")
            return not self.credential.is_expired(self.clock())

        self.credential = fresh
        self.renewals += 1
        return True

    def _set_status(self, change: TransportStateChange) -> None:
        self.status = change.status
        for listener in list(self._listeners):
            listener(change)


class InMemoryTransport(RealtimeTransport):
    """
    Transport opening InMemoryConnections on a shared broker.

    Attributes:
        connections: Every connection opened, oldest first
        open_calls: Number of open() calls
        fail_open_with: If set, the next open() raises it
    """

    def __init__(
        self,
        broker: Optional[InMemoryBroker] = None,
        clock: Callable[[], int] = now_ms,
        renewal_margin_ms: int = DEFAULT_RENEWAL_MARGIN_MS,
    ):
        self.broker = broker or InMemoryBroker(clock=clock)
        self.clock = clock
        self.renewal_margin_ms = renewal_margin_ms
        self.connections: List[InMemoryConnection] = []
        self.open_calls = 0
        self.fail_open_with: Optional[Exception] = None

    async def open(self, credential_provider: CredentialProvider) -> InMemoryConnection:
        self.open_calls += 1

        if self.fail_open_with is not None:
            error, self.fail_open_with = self.fail_open_with, None
            raise error

        credential = await credential_provider()
        if credential.is_expired(self.clock()):
            raise TransportError("Refusing expired credential")

        connection = InMemoryConnection(
            broker=self.broker,
            credential_provider=credential_provider,
            credential=credential,
            clock=self.clock,
            renewal_margin_ms=self.renewal_margin_ms,
        )
        self.connections.append(connection)
        logger.debug(f"Opened {connection.id} for {credential.identity}")
        return connection

    @property
    def last_connection(self) -> Optional[InMemoryConnection]:
        return self.connections[-1] if self.connections else None
