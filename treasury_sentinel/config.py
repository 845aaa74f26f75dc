"""Treasury Sentinel — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class SentinelSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SENTINEL_",
        "extra": "ignore",
    }

    # ── Storage ────────────────────────────────────────────────
    database_url: str = "sqlite+pysqlite:///./treasury_sentinel.db"
    database_echo: bool = False

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = SentinelSettings()
