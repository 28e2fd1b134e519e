"""
Credential domain model.

A Credential is a short-lived, room-scoped proof of authorization for the
realtime broker. It is minted per request, never persisted, and carries
either a token request (HMAC signed, exchanged by the broker's client
library for a token) or an already encoded token.
"""

import json
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

CAPABILITY_OPERATIONS = ["publish", "subscribe"]


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def room_capability(room: str) -> Dict[str, List[str]]:
    """
    Build the fixed subscribe+publish capability for one room.

    Args:
        room: Channel name

    Returns:
        Capability mapping {room: ["publish", "subscribe"]}
    """
    return {room: list(CAPABILITY_OPERATIONS)}


class Credential(BaseModel):
    """
    Scoped, time-boxed broker credential.

    Attributes:
        identity: Anonymous client id the credential is bound to
        capability: Channel -> allowed operations
        issued_at: Issue time (Unix ms)
        expires_at: Expiry time (Unix ms)
        key_name: Public half of the broker API key
        nonce: Token request nonce (token requests only)
        mac: Token request signature (token requests only)
        token: Encoded token (JWT credentials only)
        signed_capability: Capability string exactly as covered by the mac
    """

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., min_length=1, description="Client id")
    capability: Dict[str, List[str]] = Field(..., description="Granted scope")
    issued_at: int = Field(..., ge=0, description="Issued at (Unix ms)")
    expires_at: int = Field(..., ge=0, description="Expires at (Unix ms)")
    key_name: str = Field(..., min_length=1, description="API key name")
    nonce: Optional[str] = Field(default=None)
    mac: Optional[str] = Field(default=None)
    token: Optional[str] = Field(default=None)
    signed_capability: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def validate_lifetime_and_signature(self) -> "Credential":
        """Expiry must follow issuance; exactly one signature form is set."""
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be later than issued_at")

        has_request = self.mac is not None and self.nonce is not None
        has_token = self.token is not None
        if has_request == has_token:
            raise ValueError(
                "Credential needs either nonce+mac or token, not both"
            )
        return self

    @property
    def ttl_ms(self) -> int:
        """Lifetime in milliseconds."""
        return self.expires_at - self.issued_at

    @property
    def is_token_request(self) -> bool:
        """True for HMAC token requests, False for encoded tokens."""
        return self.mac is not None

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        """Check whether the credential is expired at the given time."""
        at_ms = now_ms() if at_ms is None else at_ms
        return at_ms >= self.expires_at

    def expires_within(self, margin_ms: int, at_ms: Optional[int] = None) -> bool:
        """Check whether the credential expires within margin_ms from at_ms."""
        at_ms = now_ms() if at_ms is None else at_ms
        return at_ms + margin_ms >= self.expires_at

    def allows(self, channel: str, operation: str) -> bool:
        """Check whether the capability grants operation on channel."""
        ops = self.capability.get(channel) or self.capability.get("*") or []
        return "*" in ops or operation in ops

    def to_wire(self) -> Dict[str, Any]:
        """
        Serialize to the JSON body the broker's client library expects.

        Token requests use keyName/clientId/capability/timestamp/ttl/
        nonce/mac; encoded tokens use token/keyName/clientId/capability/
        issued. Both carry an explicit "expires" timestamp.
        """
        capability = self.signed_capability or json.dumps(
            self.capability, separators=(",", ":")
        )

        if self.is_token_request:
            return {
                "keyName": self.key_name,
                "clientId": self.identity,
                "capability": capability,
                "timestamp": self.issued_at,
                "ttl": self.ttl_ms,
                "nonce": self.nonce,
                "mac": self.mac,
                "expires": self.expires_at,
            }

        return {
            "token": self.token,
            "keyName": self.key_name,
            "clientId": self.identity,
            "capability": capability,
            "issued": self.issued_at,
            "expires": self.expires_at,
        }

    @classmethod
    def from_wire(cls, body: Dict[str, Any]) -> "Credential":
        """
        Parse a credential from its wire form.

        Args:
            body: Decoded JSON body from the token endpoint

        Returns:
            Credential

        Raises:
            ValueError: If the body is not a recognizable credential
        """
        if not isinstance(body, dict):
            raise ValueError("Credential body must be a JSON object")

        capability = body.get("capability", {})
        signed_capability = None
        if isinstance(capability, str):
            signed_capability = capability
            try:
                capability = json.loads(capability)
            except json.JSONDecodeError as e:
                raise ValueError(f"Malformed capability: {e}") from e

        issued_at = body.get("timestamp", body.get("issued"))
        expires_at = body.get("expires")
        if expires_at is None and issued_at is not None and "ttl" in body:
            expires_at = int(issued_at) + int(body["ttl"])

        if issued_at is None or expires_at is None:
            raise ValueError("Credential body lacks issue or expiry time")

        return cls(
            identity=body.get("clientId", ""),
            capability=capability,
            issued_at=int(issued_at),
            expires_at=int(expires_at),
            key_name=body.get("keyName", ""),
            nonce=body.get("nonce"),
            mac=body.get("mac"),
            token=body.get("token"),
            signed_capability=signed_capability,
        )
