"""
Service settings for the liveconfig runtime.

All settings are loaded from environment variables prefixed with
`LIVECONFIG_` (or a local `.env` file). These settings configure the runtime
itself; the configuration that is bound onto components lives in
`liveconfig.context.environment.Environment`.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LIVECONFIG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service identity
    SERVICE_NAME: str = "liveconfig"
    LOG_LEVEL: str = "INFO"

    # Admin HTTP surface
    HOST: str = "127.0.0.1"
    PORT: int = 8080
    # When set, admin routes require a matching X-Admin-Token header.
    ADMIN_TOKEN: Optional[str] = None

    # Comma-separated YAML/JSON files; later files win.
    CONFIG_FILES: str = ""
    # Optional prefix for relaxed OS env lookups, e.g. "APP" makes
    # `cfg-a.retries` read from `APP_CFG_A_RETRIES`.
    ENV_PREFIX: str = ""

    STATS_METRICS_ENABLED: bool = False

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    @property
    def config_file_paths(self) -> List[Path]:
        return [Path(p.strip()) for p in self.CONFIG_FILES.split(",") if p.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
