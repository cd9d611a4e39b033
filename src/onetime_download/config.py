"""Application configuration for onetime_download."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()

try:
    from pydantic import Field, field_validator
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "Missing dependencies. Install with `pip install -e .` before running."
    ) from exc


_PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """Settings loaded from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ONETIME_DOWNLOAD_",
        env_file=".env",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    cache_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://redis:6379/0"
    redis_password: Optional[str] = None
    cache_ttl_seconds: int = Field(default=300, gt=0)
    cache_key_prefix: str = "video_meta:"

    ytdlp_binary: str = "yt-dlp"
    ffmpeg_location: Optional[Path] = None
    metadata_timeout_seconds: float = Field(default=60.0, gt=0)
    download_idle_timeout_seconds: float = Field(default=120.0, gt=0)
    stream_chunk_size: int = Field(default=64 * 1024, gt=0)

    templates_dir: Path = Field(
        default_factory=lambda: _PACKAGE_DIR / "templates"
    )
    static_dir: Path = Field(default_factory=lambda: _PACKAGE_DIR / "static")

    @field_validator("cache_backend", mode="before")
    @classmethod
    def normalize_cache_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def use_memory_cache(self) -> bool:
        """True when metadata should be cached in-process instead of Redis."""

        return self.cache_backend == "memory"
