"""Runtime configuration — env-driven.

Centralized config using pydantic-settings for environment variable
support. Reads from .env file and EASEL_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class EaselConfig(BaseSettings):
    """Engine configuration with environment variable overrides.

    All settings can be overridden via EASEL_* environment variables
    or a .env file in the project root.

    Examples
    --------
    Override via environment::

        export EASEL_ENVIRONMENT=staging
        export EASEL_LOG_LEVEL=DEBUG
        export EASEL_DATABASE_PATH=/data/easel.db

    Or via .env file::

        EASEL_ENVIRONMENT=production
        EASEL_JOB_QUEUE_PATH=/data/jobs.db
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="EASEL_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage paths
    database_path: Path = Path(".easel/easel.db")
    object_storage_path: Path = Path(".easel/objects")
    public_base_url: str = ""  # empty -> file:// urls

    # Outbound job queue (None -> volatile in-memory queue)
    job_queue_path: Path | None = None
    max_job_queue: int = 1024

    # Record defaults
    default_currency: str = "ZAR"
    default_provenance: str = "From the artist"

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from easel.config import config`
config = EaselConfig()
