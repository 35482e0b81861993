"""
Configuration and settings for the site backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Storage selection. "auto" uses DATABASE_URL when reachable and falls
    # back to the JSON file store otherwise.
    storage_backend: Literal["auto", "sqlite", "postgres", "json"] = Field(
        default="auto"
    )
    database_url: Optional[str] = Field(default=None)
    force_file_store: bool = Field(default=False)
    db_ssl_disable: bool = Field(default=False)
    sqlite_path: str = Field(default="data.sqlite")
    json_store_path: str = Field(default="data.json")

    # Uploads
    uploads_dir: str = Field(default="uploads")
    max_body_bytes: int = Field(default=10 * 1024 * 1024)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
