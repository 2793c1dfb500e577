"""Application configuration using Pydantic Settings."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "reading-status-sync"
    app_version: str = "0.1.0"
    debug: bool = False

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    # Shared bearer token for ingestion. Unset rejects every write.
    auth_token: Optional[str] = None

    # State store
    database_url: str = "sqlite+aiosqlite:///./readingsync.db"

    # Cover lookup
    cover_lookup_enabled: bool = True
    cover_lookup_timeout: float = 5.0

    # Read API
    heatmap_timezone: str = "UTC"


# Create a singleton instance
settings = Settings()
