from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "VideoShare Transcode API"
    api_v1_prefix: str = "/api"
    log_level: str = "INFO"

    database_url: str | None = Field(
        default="sqlite+aiosqlite:///./videoshare.db",
        description="Async SQLAlchemy connection string; empty keeps jobs in memory",
    )

    upload_dir: Path = Field(
        default=Path("data/uploads"),
        description="Only source files under this directory may be registered",
    )
    video_dir: Path = Field(
        default=Path("data/videos"),
        description="Directory receiving transcoded outputs",
    )
    thumbnail_dir: Path = Field(
        default=Path("data/thumbnails"),
        description="Directory receiving extracted thumbnails",
    )

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    transcode_workers: int = Field(
        default=4,
        ge=1,
        description="Number of worker coroutines draining the transcode queue",
    )
    encode_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional wall-clock limit for a single encode; unset disables it",
    )
    stderr_tail_lines: int = Field(
        default=20,
        ge=1,
        description="ffmpeg stderr lines preserved in a failed job's error detail",
    )
    store_write_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for a job lifecycle write before giving up",
    )
    store_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Delay before the first lifecycle write retry; doubles per attempt",
    )

    thumbnail_size: str = Field(default="320x240", pattern=r"^\d+x\d+$")
    thumbnail_position: float = Field(default=0.1, ge=0.0, le=1.0)

    enable_prometheus_metrics: bool = Field(
        default=True, description="Expose Prometheus metrics endpoint when true"
    )
    prometheus_metrics_path: str = "/metrics"


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
