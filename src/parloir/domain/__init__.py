"""
Parloir domain layer.
"""

from parloir.domain.credential import Credential, now_ms, room_capability
from parloir.domain.message import Message, MessageLog

__all__ = [
    "Credential",
    "Message",
    "MessageLog",
    "now_ms",
    "room_capability",
]
