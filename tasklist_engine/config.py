"""Application settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """Runtime settings loaded from ``TASKLIST_*`` environment variables."""

    app_name: str = "tasklist_engine"
    store_backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: Path = BASE_DIR / "tasks.db"
    db_timeout_s: float = Field(default=5.0, gt=0)
    # empty means a random per-process secret, so tokens die with the process
    auth_secret: str = ""
    token_ttl_s: int = Field(default=3600, ge=1)
    password_iterations: int = Field(default=200_000, ge=1)
    max_name_attempts: int = Field(default=100, ge=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="TASKLIST_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
