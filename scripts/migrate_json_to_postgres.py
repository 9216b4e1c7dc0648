from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from handshake_relay.app.models import SecretRecord, parse_records
from handshake_relay.storage.postgres import PostgresSecretStore


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Copy handshake records from a secrets.json document into PostgreSQL."
    )
    parser.add_argument(
        "--secrets-file",
        type=Path,
        default=Path("secrets.json"),
        help="Path to the source JSON document (default: secrets.json).",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        required=True,
        help="PostgreSQL connection URL.",
    )
    return parser.parse_args()


def _load_records(
    secrets_file: Path, *, rejected: dict[str, Any]
) -> dict[str, SecretRecord]:
    if not secrets_file.exists():
        raise FileNotFoundError(f"Secrets file not found: {secrets_file}")
    raw: Any = json.loads(secrets_file.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise TypeError(f"Expected JSON object, received {type(raw)!r}")
    return parse_records(raw, rejected=rejected)


def migrate(
    *, secrets_file: Path, database_url: str, skipped: list[str] | None = None
) -> int:
    """Copy every parseable record; ids of entries that fail to parse go to `skipped`."""
    rejected: dict[str, Any] = {}
    records = _load_records(secrets_file, rejected=rejected)
    if skipped is not None:
        skipped.extend(sorted(rejected))

    # Reuse the store's schema setup, then copy rows verbatim to keep timestamps.
    PostgresSecretStore(database_url).migrate()

    import psycopg
    from psycopg.types.json import Json

    with psycopg.connect(database_url) as conn:
        for request_id, record in records.items():
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
                    created_at = EXCLUDED.created_at,
                    updated_at = EXCLUDED.updated_at
                """,
                (
                    request_id,
                    Json(record.model_dump(mode="json")),
                    record.created_at,
                    record.checked_at or record.completed_at or record.created_at,
                ),
            )
        conn.commit()

    return len(records)


def main() -> None:
    args = _parse_args()
    skipped: list[str] = []
    migrated = migrate(
        secrets_file=args.secrets_file,
        database_url=args.database_url,
        skipped=skipped,
    )
    print(f"Migrated {migrated} record(s) from {args.secrets_file} to PostgreSQL database.")
    if skipped:
        print(f"Skipped {len(skipped)} unparseable record(s), left in place: {', '.join(skipped)}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
