"""
Chat message and message log models.
"""

from typing import Any, Iterator, List, Mapping

from pydantic import BaseModel, ConfigDict, Field

OWN_MESSAGE_LABEL = "You"


class Message(BaseModel):
    """
    Chat message as delivered by the broker.

    Immutable once received.

    Attributes:
        id: Broker-assigned id, unique per broker
        sender_handle: Anonymous handle of the publisher
        body: Text content
        sent_at: Broker timestamp (Unix ms)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Broker message id")
    sender_handle: str = Field(..., description="Publisher handle")
    body: str = Field(..., description="Message text")
    sent_at: int = Field(..., ge=0, description="Broker timestamp (Unix ms)")

    @classmethod
    def from_broker_event(cls, event: Mapping[str, Any]) -> "Message":
        """
        Map a broker event {id, name, data, timestamp} to a Message.

        The event name carries the sender handle and data carries the body.
        """
        return cls(
            id=str(event["id"]),
            sender_handle=str(event.get("name") or ""),
            body=str(event.get("data") or ""),
            sent_at=int(event.get("timestamp") or 0),
        )

    def is_from(self, handle: str) -> bool:
        """Check whether handle published this message."""
        return self.sender_handle == handle

    def display_name(self, local_handle: str) -> str:
        """Name to render: "You" for own messages, the sender otherwise."""
        if self.is_from(local_handle):
            return OWN_MESSAGE_LABEL
        return self.sender_handle


class MessageLog:
    """
    Append-only, arrival-ordered sequence of messages.

    Entries are never removed or reordered once appended. Duplicates
    replayed by the transport after a resume are kept as delivered.
    """

    def __init__(self):
        self._messages: List[Message] = []

    def append(self, message: Message) -> None:
        """Append a message at the end of the log."""
        self._messages.append(message)

    def snapshot(self) -> List[Message]:
        """Copy of the current entries, oldest first."""
        return list(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __repr__(self) -> str:
        return f"MessageLog(size={len(self._messages)})"
