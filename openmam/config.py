from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_files() -> list[str]:
    """Load .env from the project root, then a local .env."""
    base = Path(__file__).resolve().parent.parent  # project root
    return [str(base / ".env"), ".env"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Service Redis (task queue + rate limiting, not tenant data) ──────────
    redis_url: str = "redis://localhost:6379/0"

    # ── Open Source Cloud platform ───────────────────────────────────────────
    osc_environment: str = "prod"
    storage_instance_name: str = "mamstorage"
    cache_instance_name: str = "mamcache"

    # Instance provisioning
    provision_max_attempts: int = 3
    provision_base_delay_seconds: float = 1.0
    instance_ready_timeout_seconds: float = 300.0

    # ── Object storage ───────────────────────────────────────────────────────
    media_bucket: str = "media-assets"
    s3_upload_expiry_seconds: int = 3600
    s3_download_expiry_seconds: int = 3600

    # ── Transcoding jobs ─────────────────────────────────────────────────────
    job_max_wait_seconds: float = 300.0  # 5 min per FFmpeg job
    job_poll_interval_seconds: float = 2.0

    # "inline" runs the pipeline as a request background task,
    # "queue" hands it to the ARQ worker (openmam.worker).
    pipeline_backend: Literal["inline", "queue"] = "inline"

    # ── CORS ─────────────────────────────────────────────────────────────────
    env_name: str = "development"
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [x.strip() for x in self.cors_origins.split(",") if x.strip()]
