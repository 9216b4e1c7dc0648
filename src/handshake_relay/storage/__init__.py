"""Storage backends for handshake secret records."""

from handshake_relay.config.settings import Settings
from handshake_relay.storage.base import SecretStore
from handshake_relay.storage.json_file import JsonFileSecretStore
from handshake_relay.storage.memory import InMemorySecretStore
from handshake_relay.storage.postgres import PostgresSecretStore


def build_secret_store(settings: Settings) -> SecretStore:
    """Pick the backend named by settings.storage_backend."""
    if settings.storage_backend == "memory":
        return InMemorySecretStore()
    if settings.storage_backend == "postgres":
        return PostgresSecretStore(settings.database_url)
    return JsonFileSecretStore(settings.secrets_file)


__all__ = [
    "InMemorySecretStore",
    "JsonFileSecretStore",
    "PostgresSecretStore",
    "SecretStore",
    "build_secret_store",
]
