"""Storage interface for handshake secret records."""

from __future__ import annotations

from typing import Any, Protocol

from handshake_relay.app.models import SecretRecord


class SecretStore(Protocol):
    def migrate(self) -> None: ...

    def read_all(self) -> dict[str, SecretRecord]: ...

    def read_one(self, request_id: str) -> SecretRecord | None: ...

    def update(self, request_id: str, field: str, value: Any) -> SecretRecord: ...

    def update_many(self, request_id: str, values: dict[str, Any]) -> SecretRecord: ...
