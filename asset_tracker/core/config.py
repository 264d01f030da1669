"""Environment-driven configuration for the asset tracker.

Every tunable the service reads lives on ``AppSettings`` so the rest of the
code imports ``settings`` instead of poking at ``os.environ``. Values come from
the process environment first and then from ``.env`` / ``.env.local``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Asset Tracker"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")

    # Empty means "SQLite file inside DATA_DIR"; resolved in ``get_settings``.
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DATABASE_URL", "DB_URL"))

    # ---- Headless authentication
    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    API_KEY_SUBJECT: str = "api-key"
    API_KEY_ROLE: str = "it_admin"
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "asset-tracker-clients"
    JWT_ISSUER: str = "asset-tracker"
    JWT_ACCESS_TTL_MIN: int = 15

    # Comma separated roles allowed to call mutating operations.
    MUTATING_ROLES: str = "admin,it_admin"

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 1000

    # Audit entries that could not be written with their transaction land here.
    AUDIT_SPOOL_FILE: str = "audit_spool.jsonl"

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def mutating_roles(self) -> frozenset[str]:
        return frozenset(item.strip().lower() for item in self.MUTATING_ROLES.split(",") if item.strip())

    @property
    def audit_spool_path(self) -> Path:
        return Path(self.DATA_DIR) / self.AUDIT_SPOOL_FILE


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'assets.db'}"
    return settings


settings = get_settings()
