"""In-memory storage backend for tests and throwaway runs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from handshake_relay.app.models import SecretRecord, merge_record


class InMemorySecretStore:
    """Dict-backed store; records are copied on the way in and out."""

    def __init__(self) -> None:
        self._records: dict[str, SecretRecord] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def read_all(self) -> dict[str, SecretRecord]:
        with self._lock:
            return {
                request_id: record.model_copy(deep=True)
                for request_id, record in self._records.items()
            }

    def read_one(self, request_id: str) -> SecretRecord | None:
        with self._lock:
            record = self._records.get(request_id)
            return record.model_copy(deep=True) if record else None

    def update(self, request_id: str, field: str, value: Any) -> SecretRecord:
        return self.update_many(request_id, {field: value})

    def update_many(self, request_id: str, values: dict[str, Any]) -> SecretRecord:
        with self._lock:
            updated = merge_record(
                self._records.get(request_id),
                request_id,
                values,
                now=datetime.now(UTC),
            )
            self._records[request_id] = updated
            return updated.model_copy(deep=True)
