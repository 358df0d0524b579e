"""Configuration settings for lyubi."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from lyubi.utils import get_lyubi_home
from lyubi.validation import validate_backend_url


class Settings(BaseSettings):
    """Settings loaded from ``LYUBI_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="LYUBI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase (remote store); both required to go online
    supabase_url: str | None = None
    supabase_key: str | None = None
    activities_table: str = "activities"
    records_table: str = "records"

    # Local cache
    data_dir: Path | None = None
    cache_file: str = "cache.db"

    # UI
    notice_seconds: float = 4.0
    log_level: str = "INFO"

    @property
    def home(self) -> Path:
        return (self.data_dir or get_lyubi_home()).expanduser()

    @property
    def cache_path(self) -> Path:
        return self.home / self.cache_file

    @property
    def is_online(self) -> bool:
        """Whether remote store credentials are configured and safe to use."""
        return bool(self.supabase_key and validate_backend_url(self.supabase_url))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
