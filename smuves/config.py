"""SMUVES — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── HubSpot API ──
    hubspot_base_url: str = "https://api.hubapi.com"
    hubspot_max_retries: int = 3
    published_state: str = "PUBLISHED"

    # ── Database ──
    database_url: str = ""

    # ── App ──
    service_name: str = "smuves"
    service_version: str = "1.0.0"
    log_level: str = "INFO"
    http_timeout_seconds: float = 30.0
    sync_concurrency: int = 4  # Parallel page writes per sync/revert
    scheduler_enabled: bool = True

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/smuves.db"
        return "sqlite:///./smuves.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
