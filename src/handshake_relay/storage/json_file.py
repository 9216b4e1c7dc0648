"""Single-document JSON file storage backend.

Layout: one JSON object mapping request_id -> record, rewritten as a whole on
every mutation. The write goes to a temp file in the same directory and is
renamed over the target, so readers never see a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from handshake_relay.app.errors import StorageUnavailable
from handshake_relay.app.models import SecretRecord, merge_record, parse_records

logger = logging.getLogger(__name__)


class JsonFileSecretStore:
    """File-backed store; mutations are serialized through one lock."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def migrate(self) -> None:
        """Make sure the parent directory exists; the file itself is created lazily."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot prepare secrets directory: {exc}") from exc

    def read_all(self) -> dict[str, SecretRecord]:
        with self._lock:
            records, _ = self._load(strict=False)
            return records

    def read_one(self, request_id: str) -> SecretRecord | None:
        return self.read_all().get(request_id)

    def update(self, request_id: str, field: str, value: Any) -> SecretRecord:
        return self.update_many(request_id, {field: value})

    def update_many(self, request_id: str, values: dict[str, Any]) -> SecretRecord:
        with self._lock:
            records, unparsed = self._load(strict=True)
            if request_id in unparsed:
                raise StorageUnavailable(
                    f"Stored record {request_id} in {self.path} cannot be parsed",
                    request_id=request_id,
                )
            updated = merge_record(
                records.get(request_id),
                request_id,
                values,
                now=datetime.now(UTC),
            )
            records[request_id] = updated
            self._write(records, unparsed)
        logger.debug(
            "secret_store event=updated backend=json request_id=%s fields=%s",
            request_id,
            sorted(values),
        )
        return updated

    def _load(self, *, strict: bool) -> tuple[dict[str, SecretRecord], dict[str, Any]]:
        """Read the whole document as (records, entries that failed to parse).

        A missing file is empty. An unreadable or corrupt file reads as empty
        unless `strict`, in which case StorageUnavailable is raised so a write
        never replaces a document it could not read.
        """
        try:
            raw_text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}, {}
        except OSError as exc:
            return self._unreadable("read_failed", exc, strict=strict)
        try:
            raw = json.loads(raw_text)
        except ValueError as exc:
            return self._unreadable("corrupt_document", exc, strict=strict)
        if not isinstance(raw, dict):
            return self._unreadable(
                "corrupt_document", f"top level is {type(raw).__name__}", strict=strict
            )

        unparsed: dict[str, Any] = {}
        records = parse_records(raw, rejected=unparsed)
        if unparsed:
            logger.warning(
                "secret_store event=unparsed_records backend=json path=%s request_ids=%s",
                self.path,
                sorted(unparsed),
            )
        return records, unparsed

    def _unreadable(
        self, event: str, reason: object, *, strict: bool
    ) -> tuple[dict[str, SecretRecord], dict[str, Any]]:
        logger.warning(
            "secret_store event=%s backend=json path=%s reason=%s", event, self.path, reason
        )
        if strict:
            raise StorageUnavailable(f"Cannot read secrets file {self.path}: {reason}")
        return {}, {}

    def _write(self, records: dict[str, SecretRecord], unparsed: dict[str, Any]) -> None:
        # Entries that failed to parse are written back exactly as they were read.
        document: dict[str, Any] = dict(unparsed)
        document.update(
            {request_id: record.model_dump(mode="json") for request_id, record in records.items()}
        )
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageUnavailable(f"Cannot write secrets file {self.path}: {exc}") from exc
