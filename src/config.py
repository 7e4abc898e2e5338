"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Variables use the ``BBT_`` prefix, e.g. ``BBT_LOG_LEVEL=DEBUG``.
    """

    # --- App ---
    app_name: str = "BBT Ensemble"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Engine ---
    config_path: Path | None = None  # overrides the bundled bbt_config.yaml

    model_config = {"env_prefix": "BBT_", "env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
