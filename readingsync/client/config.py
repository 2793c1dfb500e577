"""Device-side configuration using Pydantic Settings."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from .session_context import RecorderMode


class ClientSettings(BaseSettings):
    """Client settings loaded from ``READINGSYNC_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="READINGSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Delivery
    sync_endpoint: str = "http://localhost:8000/events"
    auth_token: Optional[str] = None
    request_timeout: float = 10.0

    # Offline queue
    queue_path: str = "readingstatus_queue.ndjson"
    queue_capacity: int = 100

    # Recorder
    recorder_mode: RecorderMode = RecorderMode.DWELL
    min_dwell: int = 5
    max_dwell: int = 90
    flush_every_pages: int = 10

    # Scheduling (seconds)
    flush_delay: float = 0.5
    startup_flush_delay: float = 5.0
    sync_interval: Optional[float] = None
