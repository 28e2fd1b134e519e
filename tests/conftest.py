"""
Test fixtures and configuration.
"""

from typing import Optional

import pytest
from fastapi.testclient import TestClient

from parloir.config import Settings, reset_settings
from parloir.di import Container
from parloir.domain import Credential, room_capability
from parloir.infrastructure.signing import CredentialSigner
from parloir.main import ParloirApp
from parloir.presentation.api.dependencies import set_container
from parloir.reporter import SystemReporter

ROOM = "parloir-chat"
START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host's broker key and environment name out of Settings."""
    monkeypatch.delenv("ABLY_API_KEY", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    reset_settings()
    yield
    reset_settings()
    set_container(None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> SystemReporter:
    """Quiet reporter for server-side components."""
    return SystemReporter(name="parloir-test", level="warning", verbose=0)


@pytest.fixture
def make_settings():
    """Factory for Settings built without YAML files."""

    def _make(**overrides) -> Settings:
        values = {"ENV": "test", "room": ROOM, "log_level": "warning"}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_credential(clock):
    """Factory for token-request credentials relative to the fake clock."""

    def _make(
        identity: str = "parloir-user-1",
        ttl_ms: int = 60_000,
        issued_at: Optional[int] = None,
        room: str = ROOM,
    ) -> Credential:
        issued = clock() if issued_at is None else issued_at
        return Credential(
            identity=identity,
            capability=room_capability(room),
            issued_at=issued,
            expires_at=issued + ttl_ms,
            key_name="test-key",
            nonce="0011223344556677",
            mac="c2lnbmF0dXJl",
        )

    return _make


@pytest.fixture
def make_client(make_settings, reporter):
    """
    Factory for a TestClient over a fully wired ParloirApp.

    Returns (client, container) so tests can inspect stats and signers.
    """

    def _make(signer: Optional[CredentialSigner] = None, **overrides):
        settings = make_settings(**overrides)
        container = Container(settings, reporter=reporter, signer=signer)
        parloir_app = ParloirApp(settings, container=container)
        client = TestClient(parloir_app.app, raise_server_exceptions=False)
        return client, container

    yield _make
    set_container(None)
