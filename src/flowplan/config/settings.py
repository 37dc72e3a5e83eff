"""Application settings.

All configuration is sourced from `FLOWPLAN_*` environment variables (and optionally `.env`).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed environment-backed settings for FlowPlan."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWPLAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_dir: Path = Field(default_factory=Path.cwd)
    storage_subdir: str = ".claude/flowplans"

    # HTTP / Socket.IO server
    host: str = "127.0.0.1"
    port: int = 9100
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Store and replica timing
    watch_suppress_seconds: float = Field(default=0.1, ge=0)
    autosave_delay_seconds: float = Field(default=1.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_json: bool = False
    log_stdout: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def flowplans_dir(self) -> Path:
        return self.project_dir / self.storage_subdir

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
