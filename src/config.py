from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Replicate
    replicate_api_token: str = ""
    replicate_model_version: str = (
        "1395a1d7aa48a01094887250475f384d4bae08fd0616f9c405bb81d4174597ea"
    )

    # Supabase Storage (artifact JSON)
    supabase_url: str = ""
    supabase_key: str = ""
    storage_bucket: str = "sermons"

    # Redis (index + job queue)
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "sermon-processing"

    # Worker
    worker_concurrency: int = 5
    lock_duration_seconds: float = 600.0
    lock_extension_seconds: float = 300.0
    poll_interval_seconds: float = 30.0
    job_attempts: int = 3
    job_backoff_seconds: float = 5.0

    # Per-call retry
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0

    # Alignment
    alignment_policy: str = "optimal"
    alignment_window: int = 100
    alignment_max_dp_cells: int = 4_000_000
    title_delimiters: list[str] = ["\uf6e1", "`"]

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
