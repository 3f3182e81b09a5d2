"""Configuration management for Dynaforms.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded once at
application startup; the schema document itself is runtime state and lives
in the schema registry, not here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings.

    Settings are loaded from environment variables (prefixed with
    ``DYNAFORMS_``) and .env files. All values are validated at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DYNAFORMS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "Dynaforms"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"
    debug: bool = False

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Persistent store. An empty value disables it and every call is served
    # by the in-process fallback store.
    database_url: str | None = "sqlite+aiosqlite:///./data/dynaforms.db"
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600

    # Bounded waits for the persistent store
    db_probe_timeout_seconds: float = Field(default=2.0, gt=0)
    storage_timeout_seconds: float = Field(default=5.0, gt=0)

    # Durable location of the accepted schema document
    schema_path: str = "./data/schema.json"

    # CORS Settings
    cors_origins: list[str] = Field(default=["*"])
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = Field(default=["*"])
    cors_allow_headers: list[str] = Field(default=["*"])

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("database_url", mode="before")
    @classmethod
    def empty_database_url_means_disabled(cls, v: str | None) -> str | None:
        """Treat a blank database URL as 'no persistent store configured'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def has_persistent_store(self) -> bool:
        """Whether a persistent store URL is configured."""
        return self.database_url is not None

    @property
    def is_sqlite(self) -> bool:
        """Whether the persistent store is a SQLite database."""
        return self.database_url is not None and self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached application settings instance.
    """
    return Settings()
