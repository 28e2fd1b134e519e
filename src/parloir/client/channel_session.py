"""
ChannelSession - client-side connection and channel state machine.

One session owns one transport connection, one room subscription, one live
credential and one message log. All transitions run on the event loop that
called start(); there is no locking because nothing is shared across loops
or threads. Use one session per room.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from parloir.client.connection_state import ConnectionState
from parloir.client.transport import (
    ConnectionHandle,
    RealtimeChannel,
    RealtimeTransport,
    TransportStateChange,
    TransportStatus,
)
from parloir.domain import Credential, Message, MessageLog, now_ms
from parloir.domain.exceptions import (
    CredentialExpiredError,
    IssuanceError,
    NotConnectedError,
    ParloirError,
    PublishError,
    TransportError,
)
from parloir.domain.value_objects import ChannelName

logger = logging.getLogger(__name__)

CredentialSource = Callable[[], Awaitable[Credential]]
StateChangeListener = Callable[[ConnectionState, ConnectionState], None]
MessageListener = Callable[[Message], None]
ErrorListener = Callable[[ParloirError], None]

DEFAULT_RENEWAL_MARGIN_MS = 30_000

_ALLOWED_TRANSITIONS: Dict[ConnectionState, Set[ConnectionState]] = {
    ConnectionState.IDLE: {ConnectionState.CONNECTING, ConnectionState.CLOSED},
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.FAILED,
        ConnectionState.CLOSED,
    },
    ConnectionState.CONNECTED: {
        ConnectionState.SUSPENDED,
        ConnectionState.FAILED,
        ConnectionState.CLOSED,
    },
    ConnectionState.SUSPENDED: {
        ConnectionState.CONNECTED,
        ConnectionState.FAILED,
        ConnectionState.CLOSED,
    },
    ConnectionState.FAILED: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


class ChannelSession:
    """
    Realtime session for a single chat room.

    Lifecycle:
        start()  Idle -> Connecting; fetches a credential, opens the
                 transport with a renewal callback, subscribes, -> Connected
        drop     Connected -> Suspended (transport reconnects on its own)
        resume   Suspended -> Connected (re-subscribes unless resumed)
        failure  Connecting/Connected/Suspended -> Failed
        stop()   any -> Closed

    Every message, including the ones this session publishes, enters the
    message log only through the inbound handler, in delivery order.

    Attributes:
        room: Validated room channel name
        issuer: Async callable returning a fresh Credential
        transport: Realtime transport used to open the connection
        message_log: Append-only log of received messages
        last_error: Most recent reported error, if any
    """

    def __init__(
        self,
        room: str,
        issuer: CredentialSource,
        transport: RealtimeTransport,
        handle: Optional[str] = None,
        clock: Callable[[], int] = now_ms,
        renewal_margin_ms: int = DEFAULT_RENEWAL_MARGIN_MS,
    ):
        """
        Initialize session.

        Args:
            room: Room channel name
            issuer: Credential source (e.g. TokenIssuerClient.issue)
            transport: Realtime transport
            handle: Sender handle; defaults to the first credential's identity
            clock: Millisecond clock used for expiry checks
            renewal_margin_ms: Renew credentials expiring within this margin

        Raises:
            InvalidChannelNameError: If room is not a valid channel name
        """
        self.room = ChannelName(room).value
        self.issuer = issuer
        self.transport = transport
        self.clock = clock
        self.renewal_margin_ms = renewal_margin_ms

        self.message_log = MessageLog()
        self.last_error: Optional[ParloirError] = None

        self._state = ConnectionState.IDLE
        self._handle = handle
        self._credential: Optional[Credential] = None
        self._connection: Optional[ConnectionHandle] = None
        self._channel: Optional[RealtimeChannel] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._attaching = False
        self._subscribed = False

        self._state_listeners: List[StateChangeListener] = []
        self._message_listeners: List[MessageListener] = []
        self._error_listeners: List[ErrorListener] = []

    # ================================================================
    # Observable state
    # ================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def handle(self) -> Optional[str]:
        """Sender handle attached to published messages."""
        return self._handle

    @property
    def credential(self) -> Optional[Credential]:
        """The live credential, if any."""
        return self._credential

    @property
    def can_publish(self) -> bool:
        """Whether the UI should enable its input."""
        return self._state is ConnectionState.CONNECTED

    def on_state_change(self, listener: StateChangeListener) -> None:
        """Register listener(old_state, new_state)."""
        self._state_listeners.append(listener)

    def on_message(self, listener: MessageListener) -> None:
        """Register listener(message), called after each log append."""
        self._message_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        """Register listener(error) for every reported failure."""
        self._error_listeners.append(listener)

    # ================================================================
    # Commands
    # ================================================================

    def start(self) -> asyncio.Task:
        """
        Begin connecting; returns the connect task without waiting on it.

        Outcome is reported through state and error listeners. Awaiting
        the returned task waits until the session is Connected or Failed
        (or Connecting, if the transport connects later).

        Raises:
            RuntimeError: If the session is not Idle or no loop is running
        """
        loop = asyncio.get_running_loop()

        if self._state is not ConnectionState.IDLE:
            raise RuntimeError(
                f"Session for '{self.room}' already started "
                f"(state: {self._state.value})"
            )

        self._set_state(ConnectionState.CONNECTING)
        self._connect_task = loop.create_task(self._connect())
        return self._connect_task

    async def stop(self) -> None:
        """
        Close the session from any state.

        Cancels in-flight issuance or transport open, unsubscribes, closes
        the connection and drops the credential. Idempotent; never raises.
        """
        if self._state is ConnectionState.CLOSED:
            return

        self._set_state(ConnectionState.CLOSED)

        current = asyncio.current_task()
        pending = [
            task
            for task in [self._connect_task, *self._tasks]
            if task is not None and task is not current and not task.done()
        ]
        self._connect_task = None

        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Task ended with error during stop: {e}")

        await self._release()
        logger.info(f"Session for '{self.room}' closed")

    async def publish(self, body: str) -> None:
        """
        Publish a message to the room.

        Blank bodies are ignored. The message is not added to the log here;
        the broker echoes it back through the inbound handler.

        Args:
            body: Message text

        Raises:
            NotConnectedError: If the session is not Connected
            PublishError: If the transport rejects the message
        """
        if body is None or not body.strip():
            logger.debug("Ignoring empty message")
            return

        if self._state is not ConnectionState.CONNECTED or self._channel is None:
            raise NotConnectedError(self._state.value)

        event = {"name": self._handle, "data": body}

        try:
            await self._channel.publish(event)
        except Exception as e:
            if isinstance(e, PublishError):
                self._report(e)
                raise
            error = PublishError(f"Publish failed: {e}")
            self._report(error)
            raise error from e

    async def __aenter__(self) -> "ChannelSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ================================================================
    # Connection lifecycle
    # ================================================================

    async def _connect(self) -> None:
        """Fetch the first credential, open the transport, subscribe."""
        try:
            credential = await self._fetch_credential()
        except ParloirError as e:
            await self._fail(e)
            return

        self._credential = credential
        if self._handle is None:
            self._handle = credential.identity

        try:
            connection = await self.transport.open(self._provide_credential)
        except ParloirError as e:
            await self._fail(e)
            return
        except Exception as e:
            await self._fail(TransportError(f"Transport open failed: {e}"))
            return

        self._connection = connection
        self._channel = connection.channel(self.room)
        connection.on_state_change(self._on_transport_state)

        if connection.is_connected:
            await self._attach()

    async def _attach(self) -> None:
        """Subscribe the inbound handler, then enter Connected."""
        if self._attaching or self._channel is None:
            return

        self._attaching = True
        try:
            await self._channel.subscribe(self._ingest)
        except Exception as e:
            error = e if isinstance(e, ParloirError) else TransportError(
                f"Subscribe failed: {e}"
            )
            if self._is_recoverable(error):
                # Stay Connecting/Suspended; the next CONNECTED retries
                self._report(error)
                return
            await self._fail(error)
            return
        finally:
            self._attaching = False

        self._subscribed = True
        if self._state in (ConnectionState.CONNECTING, ConnectionState.SUSPENDED):
            self._set_state(ConnectionState.CONNECTED)

    def _on_transport_state(self, change: TransportStateChange) -> None:
        """Translate transport notifications into session transitions."""
        if self._state.is_terminal:
            return

        if change.status is TransportStatus.CONNECTED:
            if self._state is ConnectionState.CONNECTING:
                self._spawn(self._attach())
            elif self._state is ConnectionState.SUSPENDED:
                if not change.resumed:
                    self._subscribed = False
                if self._subscribed:
                    self._set_state(ConnectionState.CONNECTED)
                else:
                    self._spawn(self._attach())

        elif change.status is TransportStatus.DISCONNECTED:
            if self._state is ConnectionState.CONNECTED:
                reason = change.error.message if change.error else "disconnected"
                logger.info(f"Connection for '{self.room}' suspended: {reason}")
                self._set_state(ConnectionState.SUSPENDED)

        elif change.status is TransportStatus.FAILED:
            self._spawn(
                self._fail(change.error or TransportError("Transport failed"))
            )

        elif change.status is TransportStatus.CLOSED:
            self._spawn(self._fail(TransportError("Transport closed unexpectedly")))

    def _is_recoverable(self, error: ParloirError) -> bool:
        """A subscribe error is retried when the transport dropped meanwhile."""
        if isinstance(error, TransportError) and error.recoverable:
            return True
        return self._connection is not None and not self._connection.is_connected

    async def _fail(self, error: ParloirError) -> None:
        if self._state.is_terminal:
            return

        self._report(error)
        self._set_state(ConnectionState.FAILED)
        await self._release()

    async def _release(self) -> None:
        """Unsubscribe, close the connection and drop the credential."""
        channel, self._channel = self._channel, None
        connection, self._connection = self._connection, None
        self._credential = None
        self._subscribed = False

        if channel is not None:
            try:
                await channel.unsubscribe()
            except Exception as e:
                logger.warning(f"Unsubscribe from '{self.room}' failed: {e}")

        if connection is not None:
            try:
                await connection.close()
            except Exception as e:
                logger.warning(f"Closing connection for '{self.room}' failed: {e}")

    # ================================================================
    # Credentials
    # ================================================================

    async def _fetch_credential(self) -> Credential:
        """
        Get a fresh credential from the issuer and validate its expiry.

        Raises:
            IssuanceError: If the issuer fails
            CredentialExpiredError: If the issued credential already expired
        """
        try:
            credential = await self.issuer()
        except ParloirError:
            raise
        except Exception as e:
            raise IssuanceError(f"Credential fetch failed: {e}") from e

        if credential.is_expired(self.clock()):
            raise CredentialExpiredError(credential.identity, credential.expires_at)

        return credential

    async def _provide_credential(self) -> Credential:
        """
        Renewal callback handed to the transport.

        Returns the live credential while it is outside the renewal margin,
        otherwise fetches and installs a new one. Failures are reported and
        re-raised to the transport; the session state is left unchanged.
        """
        current = self._credential
        if current is not None and not current.expires_within(
            self.renewal_margin_ms, self.clock()
        ):
            return current

        try:
            fresh = await self._fetch_credential()
        except ParloirError as e:
            self._report(e)
            raise

        if self._state.is_terminal:
            raise IssuanceError(f"Session for '{self.room}' is {self._state.value}")

        self._credential = fresh
        logger.info(
            f"Credential for '{self.room}' renewed (expires {fresh.expires_at})"
        )
        return fresh

    # ================================================================
    # Inbound messages
    # ================================================================

    def _ingest(self, event: Mapping[str, Any]) -> None:
        """Append a delivered broker event to the message log."""
        if self._state.is_terminal:
            return

        try:
            message = Message.from_broker_event(event)
        except (KeyError, TypeError, ValueError) as e:
            self._report(
                TransportError(f"Malformed event on '{self.room}': {e}", recoverable=True)
            )
            return

        self.message_log.append(message)
        for listener in list(self._message_listeners):
            self._notify(listener, message)

    # ================================================================
    # Helpers
    # ================================================================

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return

        if new_state not in _ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(
                f"Illegal transition {old_state.value} -> {new_state.value}"
            )

        self._state = new_state
        logger.info(f"Session '{self.room}': {old_state.value} -> {new_state.value}")

        for listener in list(self._state_listeners):
            self._notify(listener, old_state, new_state)

    def _report(self, error: ParloirError) -> None:
        self.last_error = error
        logger.warning(f"Session '{self.room}' error: {error.code}: {error.message}")
        for listener in list(self._error_listeners):
            self._notify(listener, error)

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _notify(listener: Callable[..., None], *args: Any) -> None:
        try:
            listener(*args)
        except Exception:
            logger.exception("Session listener raised")
