"""Application configuration from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the finance core and the dashboard."""

    model_config = SettingsConfigDict(env_prefix="FINCORE_", env_file=".env", env_file_encoding="utf-8")

    # Persistence
    backend: str = "local"  # memory | local | remote
    storage_dir: Path = Path("data/storage")
    seed_path: Path = Path("data/seed.json")

    # Backend-as-a-service
    remote_url: str = ""
    remote_api_key: str = ""
    remote_timeout: float = 10.0

    # Session
    owner_id: str = "local-user"

    # Cross-process sync
    sync_poll_interval: float = 1.0  # seconds between cache checks

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
