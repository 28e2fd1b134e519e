"""
Unit tests for Credential.

Usage:
    pytest tests/unit/domain/test_credential.py
"""

import json

import pytest
from pydantic import ValidationError

from parloir.domain import Credential, room_capability

ISSUED = 1_700_000_000_000


def _token_request(**overrides) -> Credential:
    values = {
        "identity": "parloir-user-42",
        "capability": room_capability("parloir-chat"),
        "issued_at": ISSUED,
        "expires_at": ISSUED + 3_600_000,
        "key_name": "app.key",
        "nonce": "abcdef0123456789",
        "mac": "bWFj",
    }
    values.update(overrides)
    return Credential(**values)


class TestCredentialValidation:
    """Construction invariants."""

    def test_expiry_must_follow_issue_time(self):
        with pytest.raises(ValidationError):
            _token_request(expires_at=ISSUED)

    def test_requires_a_signature_form(self):
        with pytest.raises(ValidationError):
            _token_request(nonce=None, mac=None)

    def test_rejects_both_signature_forms(self):
        with pytest.raises(ValidationError):
            _token_request(token="a.b.c")

    def test_is_immutable(self):
        credential = _token_request()

        with pytest.raises(ValidationError):
            credential.identity = "someone-else"

    def test_ttl_ms(self):
        assert _token_request().ttl_ms == 3_600_000


class TestCredentialExpiry:
    """Expiry and renewal-margin checks."""

    def test_not_expired_before_expires_at(self):
        credential = _token_request()

        assert not credential.is_expired(ISSUED)
        assert not credential.is_expired(ISSUED + 3_599_999)

    def test_expired_at_expires_at(self):
        assert _token_request().is_expired(ISSUED + 3_600_000)

    def test_expires_within_margin(self):
        credential = _token_request()

        assert not credential.expires_within(30_000, ISSUED)
        assert credential.expires_within(30_000, ISSUED + 3_570_000)


class TestCredentialScope:
    """Capability checks."""

    def test_allows_room_operations(self):
        credential = _token_request()

        assert credential.allows("parloir-chat", "publish")
        assert credential.allows("parloir-chat", "subscribe")

    def test_denies_other_channels(self):
        assert not _token_request().allows("other-room", "subscribe")

    def test_denies_other_operations(self):
        assert not _token_request().allows("parloir-chat", "presence")

    def test_wildcard_capability(self):
        credential = _token_request(capability={"*": ["*"]})

        assert credential.allows("any-room", "publish")


class TestCredentialWire:
    """Wire format conversion."""

    def test_token_request_fields(self):
        body = _token_request().to_wire()

        assert body["keyName"] == "app.key"
        assert body["clientId"] == "parloir-user-42"
        assert body["timestamp"] == ISSUED
        assert body["ttl"] == 3_600_000
        assert body["expires"] == ISSUED + 3_600_000
        assert body["nonce"] == "abcdef0123456789"
        assert body["mac"] == "bWFj"
        assert json.loads(body["capability"]) == {
            "parloir-chat": ["publish", "subscribe"]
        }

    def test_capability_is_compact_json(self):
        body = _token_request().to_wire()

        assert body["capability"] == '{"parloir-chat":["publish","subscribe"]}'

    def test_token_fields(self):
        credential = _token_request(nonce=None, mac=None, token="h.p.s")

        body = credential.to_wire()

        assert body["token"] == "h.p.s"
        assert body["issued"] == ISSUED
        assert body["expires"] == ISSUED + 3_600_000
        assert "mac" not in body

    def test_from_wire_restores_token_request(self):
        credential = _token_request()

        restored = Credential.from_wire(credential.to_wire())

        assert restored.to_wire() == credential.to_wire()
        assert restored.capability == credential.capability

    def test_signed_capability_is_emitted_verbatim(self):
        signed = '{"parloir-chat": ["publish", "subscribe"]}'
        credential = _token_request(signed_capability=signed)

        assert credential.to_wire()["capability"] == signed
        assert Credential.from_wire(credential.to_wire()).signed_capability == signed

    def test_from_wire_derives_expiry_from_ttl(self):
        body = _token_request().to_wire()
        del body["expires"]

        assert Credential.from_wire(body).expires_at == ISSUED + 3_600_000

    def test_from_wire_rejects_non_object(self):
        with pytest.raises(ValueError):
            Credential.from_wire(["not", "a", "credential"])

    def test_from_wire_rejects_missing_times(self):
        with pytest.raises(ValueError):
            Credential.from_wire({"clientId": "x", "keyName": "k", "mac": "m"})

    def test_from_wire_rejects_bad_capability(self):
        body = _token_request().to_wire()
        body["capability"] = "{not json"

        with pytest.raises(ValueError):
            Credential.from_wire(body)
