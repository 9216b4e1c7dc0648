"""Pydantic models shared by the API, the correlation engine, and storage.

Terms used in this file:
- Half/part: one of the two payloads (synchronous initiation response and
  asynchronous webhook body) needed to assemble the verification code.
- Stage: where a record sits in the handshake, derived from which fields are set.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

HandshakeStage = Literal[
    "initiated",
    "part1-received",
    "part2-received",
    "ready-to-check",
    "checked",
]

# Fields a store update may touch. request_id and created_at are set once on
# lazy creation and never overwritten.
UPDATABLE_FIELDS = frozenset(
    {
        "message",
        "webhook_url",
        "part1",
        "part2",
        "check_response",
        "checked_at",
    }
)


class SecretRecord(BaseModel):
    """Canonical per-request record shape returned by storage and the API."""

    request_id: str
    message: Any = None
    webhook_url: str | None = None
    # Opaque payloads; any JSON value.
    part1: Any = None
    part2: Any = None
    created_at: datetime
    completed_at: datetime | None = None
    check_response: Any = None
    checked_at: datetime | None = None

    @property
    def has_both_parts(self) -> bool:
        return self.part1 is not None and self.part2 is not None

    @property
    def stage(self) -> HandshakeStage:
        if self.checked_at is not None:
            return "checked"
        if self.has_both_parts:
            return "ready-to-check"
        if self.part2 is not None:
            return "part2-received"
        if self.part1 is not None:
            return "part1-received"
        return "initiated"


def merge_record(
    current: SecretRecord | None,
    request_id: str,
    values: dict[str, Any],
    *,
    now: datetime,
) -> SecretRecord:
    """Apply a partial field update, creating a default record when absent.

    completed_at is kept in step with the two halves: stamped the first time
    both are present, left alone afterwards, cleared if a half goes away.
    """
    unknown = set(values) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update record fields: {sorted(unknown)}")

    record = current or SecretRecord(request_id=request_id, created_at=now)
    updated = record.model_copy(update=values, deep=True)
    if updated.has_both_parts:
        if updated.completed_at is None:
            updated.completed_at = now
    else:
        updated.completed_at = None
    return updated


class InitiateRequest(BaseModel):
    """Request body for POST /v1/send/request."""

    # Forwarded verbatim; only empty values (null, "", 0, false) fall back to the default.
    message: Any = None


class InitiateResult(BaseModel):
    request_id: str
    webhook_url: str
    part1: Any = None


class CheckResult(BaseModel):
    request_id: str
    combined_code: str
    response: Any = None
    checked_at: datetime


def record_payload(record: SecretRecord) -> dict[str, Any]:
    """JSON-ready view of a record including its derived stage."""
    payload = record.model_dump(mode="json")
    payload["stage"] = record.stage
    return payload


# camelCase keys found in older secrets.json documents.
LEGACY_KEYS = {
    "requestId": "request_id",
    "webhookUrl": "webhook_url",
    "createdAt": "created_at",
    "completedAt": "completed_at",
    "checkResponse": "check_response",
    "checkedAt": "checked_at",
}


def parse_record(request_id: str, item: dict[str, Any]) -> SecretRecord:
    data = {LEGACY_KEYS.get(key, key): value for key, value in item.items()}
    data["request_id"] = data.get("request_id") or request_id
    data.setdefault("created_at", datetime.fromtimestamp(0, tz=UTC))
    return SecretRecord.model_validate(data)


def parse_records(
    raw: Any, *, rejected: dict[str, Any] | None = None
) -> dict[str, SecretRecord]:
    """Parse a persisted {request_id: record} document.

    Entries that do not validate are left out of the result. When `rejected`
    is given they are collected there untouched, keyed by request id.
    """
    records: dict[str, SecretRecord] = {}
    if not isinstance(raw, dict):
        return records
    for request_id, item in raw.items():
        key = str(request_id)
        record: SecretRecord | None = None
        if isinstance(item, dict):
            try:
                record = parse_record(key, item)
            except ValidationError:
                record = None
        if record is not None:
            records[key] = record
        elif rejected is not None:
            rejected[key] = item
    return records


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    message: str
    request_id: str | None = None
    upstream: Any = None
    details: Any = None
