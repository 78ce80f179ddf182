from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    """Application runtime configuration."""

    app_name: str = "WeldTrack"
    environment: str = "development"
    host: str = os.getenv("WT_HOST", "127.0.0.1")
    port: int = int(os.getenv("WT_PORT", "8080"))
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("WT_CORS_ORIGINS", "http://127.0.0.1:3000,http://localhost:3000").split(",")
            if origin.strip()
        ]
    )

    storage_backend: str = os.getenv("WT_STORAGE", "sqlite")
    sqlite_path: Path = Path(os.getenv("WT_SQLITE_PATH", "./data/weldtrack.db"))
    json_dir: Path = Path(os.getenv("WT_JSON_DIR", "./data/state"))
    storage_key: str = os.getenv("WT_STORAGE_KEY", "welders-app-storage")

    timezone: str = os.getenv("WT_TIMEZONE", "UTC")

    workday_hours: float = float(os.getenv("WT_WORKDAY_HOURS", "8"))
    suggestion_limit: int = int(os.getenv("WT_SUGGESTION_LIMIT", "5"))

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if not value:
            return []
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"sqlite", "json", "memory"}:
            raise ValueError(f"Unsupported storage backend: {value}")
        return backend


settings = Settings()

# Ensure essential directories exist
if settings.storage_backend == "sqlite":
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
elif settings.storage_backend == "json":
    settings.json_dir.mkdir(parents=True, exist_ok=True)
