"""ARGUS — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_ad_account_id: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_timeout_seconds: float = 30.0

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True

    # ── Retry / Recovery ──
    max_retry_attempts: int = 3
    stale_retry_minutes: int = 15  # "retrying" rows older than this are released
    failure_cleanup_days: int = 30
    cleanup_hour: int = 3  # Daily cleanup at 3 AM

    # ── Background Jobs ──
    job_retention_minutes: int = 30
    job_sweep_interval_minutes: int = 30

    # ── Verification ──
    budget_tolerance_cents: int = 1

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/argus.db"
        return "sqlite:///./argus.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
