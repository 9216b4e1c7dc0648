"""Application settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

StorageBackend = Literal["json", "memory", "postgres"]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "handshake-relay"
    app_env: str = "dev"
    log_level: str = "INFO"
    storage_backend: StorageBackend = "json"
    secrets_file: Path = Path("secrets.json")
    database_url: str = ""
    verifier_url: str = "https://test.icorp.uz/interview.php"
    verifier_timeout_s: float = Field(default=10.0, gt=0.0)
    # Empty means "derive from the inbound request".
    webhook_base_url: str = ""
    default_message: str = "Hello from handshake-relay"
    callback_token: str = ""
    receive_requires_known_id: bool = False

    model_config = SettingsConfigDict(
        env_prefix="HANDSHAKE_RELAY_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
