"""
Parloir - scoped realtime credentials and channel sessions.

Server side: a stateless token endpoint that mints short-lived, room-scoped
broker credentials without exposing the long-lived API key.

Client side: ChannelSession, an asyncio state machine that acquires those
credentials, opens a realtime transport, keeps one room subscription alive
across reconnects and publishes outgoing messages.
"""

__version__ = "0.1.0"
