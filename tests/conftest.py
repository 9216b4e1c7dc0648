from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from handshake_relay.app.engine import HandshakeEngine
from handshake_relay.config.settings import Settings
from handshake_relay.main import create_app
from handshake_relay.storage.memory import InMemorySecretStore


class FakeVerifierClient:
    """Test double for the external verification service."""

    def __init__(
        self,
        *,
        initiate_response: Any = None,
        verify_response: Any = None,
    ) -> None:
        self.initiate_response = (
            initiate_response if initiate_response is not None else {"part1": "AB1"}
        )
        self.verify_response = (
            verify_response if verify_response is not None else {"status": "ok"}
        )
        self.initiate_error: Exception | None = None
        self.verify_error: Exception | None = None
        self.initiate_calls: list[tuple[str, str]] = []
        self.verify_calls: list[str] = []

    def initiate(self, message: str, callback_url: str) -> Any:
        self.initiate_calls.append((message, callback_url))
        if self.initiate_error is not None:
            raise self.initiate_error
        return self.initiate_response

    def verify(self, combined_code: str) -> Any:
        self.verify_calls.append(combined_code)
        if self.verify_error is not None:
            raise self.verify_error
        return self.verify_response


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "storage_backend": "memory",
        "default_message": "Hello from tests",
        "webhook_base_url": "https://relay.example",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def verifier() -> FakeVerifierClient:
    return FakeVerifierClient()


@pytest.fixture
def engine(store: InMemorySecretStore, verifier: FakeVerifierClient) -> HandshakeEngine:
    return HandshakeEngine(
        store=store,
        client=verifier,
        default_message="Hello from tests",
        webhook_base_url="https://relay.example",
    )


@pytest.fixture
def client(store: InMemorySecretStore, verifier: FakeVerifierClient) -> TestClient:
    app = create_app(storage=store, client=verifier, settings_override=make_settings())
    with TestClient(app) as test_client:
        yield test_client
