"""PostgreSQL storage backend with one row per handshake record.

Unlike the JSON document backend, an update only touches its own row: the row
is locked with SELECT ... FOR UPDATE, merged in Python and upserted back in the
same transaction.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from handshake_relay.app.errors import StorageUnavailable
from handshake_relay.app.models import SecretRecord, merge_record, parse_record, parse_records

logger = logging.getLogger(__name__)


class PostgresSecretStore:
    """Persist handshake records in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("HANDSHAKE_RELAY_DATABASE_URL is required for the postgres backend")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        """Create the records table and index if they do not already exist."""
        try:
            with self._lock, self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS handshake_secrets (
                        request_id TEXT PRIMARY KEY,
                        record_json JSONB NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL
                    )
                    """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_handshake_secrets_updated_at
                    ON handshake_secrets(updated_at DESC)
                    """)
                conn.commit()
        except self._psycopg.Error as exc:
            raise StorageUnavailable(f"Cannot migrate secrets table: {exc}") from exc

    def read_all(self) -> dict[str, SecretRecord]:
        try:
            with self._lock, self._connect() as conn:
                rows = conn.execute(
                    "SELECT request_id, record_json FROM handshake_secrets ORDER BY created_at"
                ).fetchall()
        except self._psycopg.Error as exc:
            logger.warning("secret_store event=read_failed backend=postgres reason=%s", exc)
            return {}
        raw = {row["request_id"]: self._parse_json_object(row["record_json"]) for row in rows}
        unparsed: dict[str, Any] = {}
        records = parse_records(raw, rejected=unparsed)
        if unparsed:
            logger.warning(
                "secret_store event=unparsed_records backend=postgres request_ids=%s",
                sorted(unparsed),
            )
        return records

    def read_one(self, request_id: str) -> SecretRecord | None:
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    "SELECT request_id, record_json FROM handshake_secrets WHERE request_id = %s",
                    (request_id,),
                ).fetchone()
        except self._psycopg.Error as exc:
            logger.warning(
                "secret_store event=read_failed backend=postgres request_id=%s reason=%s",
                request_id,
                exc,
            )
            return None
        if row is None:
            return None
        try:
            return self._row_to_record(row)
        except ValidationError as exc:
            logger.warning(
                "secret_store event=unparsed_record backend=postgres request_id=%s errors=%s",
                request_id,
                exc.error_count(),
            )
            return None

    def update(self, request_id: str, field: str, value: Any) -> SecretRecord:
        return self.update_many(request_id, {field: value})

    def update_many(self, request_id: str, values: dict[str, Any]) -> SecretRecord:
        now = datetime.now(tz=UTC)
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT request_id, record_json
                    FROM handshake_secrets
                    WHERE request_id = %s
                    FOR UPDATE
                    """,
                    (request_id,),
                ).fetchone()
                try:
                    current = self._row_to_record(row) if row is not None else None
                except ValidationError as exc:
                    raise StorageUnavailable(
                        f"Stored record {request_id} cannot be parsed", request_id=request_id
                    ) from exc
                updated = merge_record(current, request_id, values, now=now)
                conn.execute(
                    """
                    INSERT INTO handshake_secrets (
                        request_id,
                        record_json,
                        created_at,
                        updated_at
                    ) VALUES (%s, %s, %s, %s)
                    ON CONFLICT (request_id) DO UPDATE
                    SET record_json = EXCLUDED.record_json,
                        updated_at = EXCLUDED.updated_at
                    """,
                    (
                        request_id,
                        self._json_wrapper(updated.model_dump(mode="json")),
                        updated.created_at,
                        now,
                    ),
                )
                conn.commit()
        except self._psycopg.Error as exc:
            raise StorageUnavailable(
                f"Cannot persist record {request_id}: {exc}", request_id=request_id
            ) from exc
        return updated

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_object(raw: Any) -> dict[str, Any]:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(parsed, dict):
            return parsed
        return {}

    @classmethod
    def _row_to_record(cls, row: Any) -> SecretRecord:
        return parse_record(row["request_id"], cls._parse_json_object(row["record_json"]))
