"""
Unit tests for ChannelSession.

Drives the session state machine through the in-memory transport, and
through a mocked transport where broker echo must be controlled by hand.

Usage:
    pytest tests/unit/client/test_channel_session.py
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest

from parloir.client import (
    ChannelSession,
    ConnectionState,
    InMemoryTransport,
    TransportStateChange,
    TransportStatus,
)
from parloir.domain.exceptions import (
    CredentialExpiredError,
    InvalidChannelNameError,
    IssuanceError,
    NotConnectedError,
    PublishError,
    TransportError,
)

ROOM = "parloir-chat"


class StubIssuer:
    """Credential source counting calls; fails while fail_with is set."""

    def __init__(self, make_credential, ttl_ms: int = 60_000, room: str = ROOM):
        self.make_credential = make_credential
        self.ttl_ms = ttl_ms
        self.room = room
        self.calls = 0
        self.fail_with: Optional[Exception] = None

    async def __call__(self):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.make_credential(
            identity=f"parloir-user-{self.calls}",
            ttl_ms=self.ttl_ms,
            room=self.room,
        )


async def settle() -> None:
    """Let tasks spawned from transport notifications run."""
    for _ in range(5):
        await asyncio.sleep(0)


def _mock_transport():
    """Transport whose channel never echoes; returns (transport, connection, channel)."""
    channel = Mock()
    channel.subscribe = AsyncMock()
    channel.unsubscribe = AsyncMock()
    channel.publish = AsyncMock()

    connection = Mock()
    connection.is_connected = True
    connection.channel.return_value = channel
    connection.close = AsyncMock()

    transport = Mock()
    transport.open = AsyncMock(return_value=connection)
    return transport, connection, channel


def _inbound_handler(channel):
    return channel.subscribe.call_args.args[0]


def _event(n: int, sender: str = "parloir-user-9", body: Optional[str] = None):
    return {
        "id": f"msg-{n}",
        "name": sender,
        "data": body or f"e{n}",
        "timestamp": 1_700_000_000_000 + n,
    }


@pytest.fixture
def issuer(make_credential):
    return StubIssuer(make_credential)


@pytest.fixture
def transport(clock):
    return InMemoryTransport(clock=clock)


@pytest.fixture
def session(issuer, transport, clock):
    return ChannelSession(ROOM, issuer, transport, clock=clock)


class TestStart:
    """Idle -> Connecting -> Connected / Failed."""

    # ================================================================
    # Happy path
    # ================================================================

    async def test_start_connects_and_subscribes(self, session, issuer, transport):
        await session.start()

        assert session.state is ConnectionState.CONNECTED
        assert session.can_publish
        assert issuer.calls == 1
        assert transport.open_calls == 1
        assert transport.last_connection.channel(ROOM).subscribe_calls == 1
        assert transport.broker.subscriber_count(ROOM) == 1

    async def test_start_enters_connecting_immediately(self, session):
        task = session.start()

        assert session.state is ConnectionState.CONNECTING
        assert not session.can_publish
        await task

    async def test_handle_comes_from_first_credential(self, session):
        await session.start()

        assert session.handle == "parloir-user-1"
        assert session.credential.identity == "parloir-user-1"

    async def test_explicit_handle_wins(self, issuer, transport, clock):
        session = ChannelSession(ROOM, issuer, transport, handle="alice", clock=clock)

        await session.start()

        assert session.handle == "alice"

    async def test_state_listener_sees_transitions(self, session):
        transitions = []
        session.on_state_change(lambda old, new: transitions.append((old, new)))

        await session.start()

        assert transitions == [
            (ConnectionState.IDLE, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        ]

    async def test_failing_listener_does_not_break_session(self, session):
        session.on_state_change(lambda old, new: 1 / 0)

        await session.start()

        assert session.state is ConnectionState.CONNECTED

    async def test_start_twice_raises(self, session):
        await session.start()

        with pytest.raises(RuntimeError):
            session.start()

    async def test_connects_when_transport_reports_later(self, session):
        transport, connection, channel = _mock_transport()
        connection.is_connected = False
        session.transport = transport

        await session.start()
        assert session.state is ConnectionState.CONNECTING

        listener = connection.on_state_change.call_args.args[0]
        listener(TransportStateChange(TransportStatus.CONNECTED))
        await settle()

        assert session.state is ConnectionState.CONNECTED
        channel.subscribe.assert_awaited_once()

    # ================================================================
    # Failures
    # ================================================================

    async def test_issuer_failure_fails_without_opening(self, session, issuer, transport):
        issuer.fail_with = IssuanceError("ABLY_API_KEY not set")
        errors = []
        session.on_error(errors.append)

        await session.start()

        assert session.state is ConnectionState.FAILED
        assert transport.open_calls == 0
        assert errors == [issuer.fail_with]
        assert session.last_error is issuer.fail_with

    async def test_unexpected_issuer_exception_is_wrapped(self, session, issuer, transport):
        issuer.fail_with = ConnectionRefusedError("no server")

        await session.start()

        assert session.state is ConnectionState.FAILED
        assert isinstance(session.last_error, IssuanceError)
        assert transport.open_calls == 0

    async def test_expired_credential_fails_without_opening(
        self, transport, make_credential, clock
    ):
        async def stale_issuer():
            return make_credential(issued_at=clock() - 120_000, ttl_ms=60_000)

        session = ChannelSession(ROOM, stale_issuer, transport, clock=clock)

        await session.start()

        assert session.state is ConnectionState.FAILED
        assert isinstance(session.last_error, CredentialExpiredError)
        assert transport.open_calls == 0

    async def test_transport_open_failure(self, session, transport):
        transport.fail_open_with = TransportError("refused")

        await session.start()

        assert session.state is ConnectionState.FAILED
        assert session.last_error.message == "refused"

    async def test_subscribe_refused_fails(self, make_credential, transport, clock):
        issuer = StubIssuer(make_credential, room="another-room")
        session = ChannelSession(ROOM, issuer, transport, clock=clock)

        await session.start()

        assert session.state is ConnectionState.FAILED
        assert isinstance(session.last_error, TransportError)
        assert transport.last_connection.close_calls == 1

    def test_invalid_room_rejected(self, issuer, transport):
        with pytest.raises(InvalidChannelNameError):
            ChannelSession("bad room", issuer, transport)


class TestPublish:
    """Publishing and the echo-only log."""

    async def test_publish_sends_once_and_waits_for_echo(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        await session.start()

        await session.publish("hello")

        channel.publish.assert_awaited_once_with(
            {"name": "parloir-user-1", "data": "hello"}
        )
        assert len(session.message_log) == 0

        _inbound_handler(channel)(_event(1, sender="parloir-user-1", body="hello"))

        assert len(session.message_log) == 1
        message = session.message_log.last
        assert message.body == "hello"
        assert message.display_name(session.handle) == "You"

    async def test_echo_through_in_memory_broker(self, session):
        await session.start()

        await session.publish("hello")

        assert [m.body for m in session.message_log] == ["hello"]

    async def test_blank_message_ignored(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        await session.start()

        await session.publish("   ")
        await session.publish("")

        channel.publish.assert_not_awaited()

    async def test_not_connected_while_idle(self, session):
        with pytest.raises(NotConnectedError) as exc_info:
            await session.publish("hi")

        assert exc_info.value.state == "idle"

    async def test_not_connected_while_connecting(self, issuer, transport, clock):
        gate = asyncio.Event()

        async def slow_issuer():
            await gate.wait()
            return await issuer()

        session = ChannelSession(ROOM, slow_issuer, transport, clock=clock)
        session.start()
        await settle()

        with pytest.raises(NotConnectedError):
            await session.publish("hi")

        await session.stop()

    async def test_not_connected_while_suspended(self, session, transport):
        await session.start()
        transport.last_connection.drop()

        with pytest.raises(NotConnectedError):
            await session.publish("hi")

        assert transport.last_connection.channel(ROOM).publish_calls == 0

    async def test_not_connected_when_failed(self, session, issuer):
        issuer.fail_with = IssuanceError()
        await session.start()

        with pytest.raises(NotConnectedError):
            await session.publish("hi")

    async def test_not_connected_when_closed(self, session):
        await session.start()
        await session.stop()

        with pytest.raises(NotConnectedError):
            await session.publish("hi")

    async def test_rejected_publish_raises_publish_error(self, session):
        transport, _, channel = _mock_transport()
        channel.publish.side_effect = TransportError("rejected")
        session.transport = transport
        await session.start()

        with pytest.raises(PublishError):
            await session.publish("hi")

        assert isinstance(session.last_error, PublishError)
        assert session.state is ConnectionState.CONNECTED


class TestInbound:
    """Inbound delivery into the message log."""

    async def test_log_follows_delivery_order(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        await session.start()
        handler = _inbound_handler(channel)

        for n in (1, 2, 3):
            handler(_event(n))

        assert [m.body for m in session.message_log] == ["e1", "e2", "e3"]

    async def test_message_listener_called_after_append(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        seen = []
        session.on_message(lambda m: seen.append((m.id, len(session.message_log))))
        await session.start()

        _inbound_handler(channel)(_event(1))

        assert seen == [("msg-1", 1)]

    async def test_malformed_event_reported_and_skipped(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        await session.start()

        _inbound_handler(channel)({"name": "no-id"})

        assert len(session.message_log) == 0
        assert isinstance(session.last_error, TransportError)
        assert session.state is ConnectionState.CONNECTED


class TestReconnect:
    """Suspension, resume and re-subscription."""

    async def test_drop_suspends(self, session, transport):
        await session.start()

        transport.last_connection.drop()

        assert session.state is ConnectionState.SUSPENDED
        assert not session.can_publish

    async def test_resume_keeps_subscription(self, session, transport):
        await session.start()
        connection = transport.last_connection
        connection.drop()

        await connection.reconnect(resume=True)

        assert session.state is ConnectionState.CONNECTED
        assert connection.channel(ROOM).subscribe_calls == 1

    async def test_non_resumed_reconnect_resubscribes(self, session, transport):
        await session.start()
        connection = transport.last_connection
        connection.drop()

        await connection.reconnect(resume=False)
        await settle()

        assert session.state is ConnectionState.CONNECTED
        assert connection.channel(ROOM).subscribe_calls == 2
        assert transport.broker.subscriber_count(ROOM) == 1

    async def test_drop_during_resubscribe_stays_suspended(self, session, transport):
        """A subscribe refused by a dropped connection is retried, not fatal."""
        await session.start()
        connection = transport.last_connection
        connection.drop()

        await connection.reconnect(resume=False)
        connection.drop()
        await settle()

        assert session.state is ConnectionState.SUSPENDED
        assert isinstance(session.last_error, TransportError)
        assert session.last_error.recoverable
        assert transport.broker.subscriber_count(ROOM) == 0

        await connection.reconnect(resume=True)
        await settle()

        assert session.state is ConnectionState.CONNECTED
        assert transport.broker.subscriber_count(ROOM) == 1

        await session.publish("back")

        assert [m.body for m in session.message_log] == ["back"]

    async def test_buffered_messages_replayed_on_resume(
        self, session, transport, issuer, clock
    ):
        other = ChannelSession(
            ROOM, issuer, InMemoryTransport(transport.broker, clock), clock=clock
        )
        await session.start()
        await other.start()
        connection = transport.last_connection

        connection.drop()
        await other.publish("while away")
        assert len(session.message_log) == 0

        await connection.reconnect(resume=True)

        assert [m.body for m in session.message_log] == ["while away"]

    async def test_transport_failure_while_connected(self, session, transport):
        await session.start()

        transport.last_connection.fail("broker gone")
        await settle()

        assert session.state is ConnectionState.FAILED
        assert session.last_error.message == "broker gone"

    async def test_transport_failure_while_suspended(self, session, transport):
        await session.start()
        transport.last_connection.drop()

        transport.last_connection.fail()
        await settle()

        assert session.state is ConnectionState.FAILED


class TestRenewal:
    """Credential renewal through the transport's provider callback."""

    async def test_renews_near_expiry(self, session, transport, issuer, clock):
        await session.start()
        connection = transport.last_connection

        clock.advance(40_000)
        assert await connection.renew_if_due()

        assert issuer.calls == 2
        assert connection.renewals == 1
        assert session.credential.identity == "parloir-user-2"
        assert session.credential is connection.credential
        assert session.handle == "parloir-user-1"
        assert session.state is ConnectionState.CONNECTED

    async def test_no_renewal_outside_margin(self, session, transport, issuer, clock):
        await session.start()

        clock.advance(10_000)
        await transport.last_connection.renew_if_due()

        assert issuer.calls == 1

    async def test_failed_renewal_keeps_valid_credential(
        self, session, transport, issuer, clock
    ):
        await session.start()
        first = session.credential
        issuer.fail_with = IssuanceError()

        clock.advance(40_000)
        await transport.last_connection.renew_if_due()

        assert session.state is ConnectionState.CONNECTED
        assert session.credential is first
        assert session.last_error is issuer.fail_with

    async def test_failed_renewal_after_expiry_fails_session(
        self, session, transport, issuer, clock
    ):
        await session.start()
        issuer.fail_with = IssuanceError()

        clock.advance(70_000)
        await transport.last_connection.renew_if_due()
        await settle()

        assert session.state is ConnectionState.FAILED

    async def test_reconnect_renews_stale_credential(
        self, session, transport, issuer, clock
    ):
        await session.start()
        connection = transport.last_connection
        connection.drop()

        clock.advance(45_000)
        await connection.reconnect(resume=True)

        assert issuer.calls == 2
        assert session.state is ConnectionState.CONNECTED


class TestStop:
    """Closing from any state."""

    async def test_stop_releases_everything(self, session, transport):
        await session.start()

        await session.stop()

        assert session.state is ConnectionState.CLOSED
        assert session.credential is None
        assert transport.broker.subscriber_count(ROOM) == 0
        assert transport.last_connection.close_calls == 1

    async def test_stop_is_idempotent(self, session, transport):
        await session.start()

        await session.stop()
        await session.stop()

        assert session.state is ConnectionState.CLOSED
        assert transport.last_connection.close_calls == 1

    async def test_stop_from_idle(self, session, transport):
        await session.stop()

        assert session.state is ConnectionState.CLOSED
        assert transport.open_calls == 0

    async def test_stop_from_failed(self, session, issuer):
        issuer.fail_with = IssuanceError()
        await session.start()

        await session.stop()

        assert session.state is ConnectionState.CLOSED

    async def test_stop_cancels_in_flight_issuance(self, transport, clock, make_credential):
        started = asyncio.Event()

        async def hanging_issuer():
            started.set()
            await asyncio.Event().wait()
            return make_credential()

        session = ChannelSession(ROOM, hanging_issuer, transport, clock=clock)
        task = session.start()
        await started.wait()

        await session.stop()

        assert task.cancelled()
        assert session.state is ConnectionState.CLOSED
        assert transport.open_calls == 0

    async def test_events_after_stop_ignored(self, session):
        transport, _, channel = _mock_transport()
        session.transport = transport
        await session.start()
        handler = _inbound_handler(channel)

        await session.stop()
        handler(_event(1))

        assert len(session.message_log) == 0
        channel.unsubscribe.assert_awaited_once()

    async def test_context_manager(self, issuer, transport, clock):
        async with ChannelSession(ROOM, issuer, transport, clock=clock) as session:
            assert session.state is ConnectionState.CONNECTED

        assert session.state is ConnectionState.CLOSED
