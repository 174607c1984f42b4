"""
Configuration and settings for the SippSearcher service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # "production" requires a networked database.
    environment: str = Field(default="development")

    # Networked database (Postgres expected)
    database_url: Optional[str] = Field(default=None)
    database_ssl: bool = Field(default=False)

    # Embedded database file used when DATABASE_URL is not set
    sqlite_path: str = Field(default="sippsearcher.db")

    # Development toggles
    use_in_memory_backend: bool = Field(default=False)

    storage_timeout_seconds: float = Field(default=10.0, gt=0)

    # Frontend collaborators
    google_maps_api_key: str = Field(default="")
    flavors_path: Optional[str] = Field(default=None)
    upload_dir: str = Field(default="public/uploads")
    public_dir: str = Field(default="public")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
