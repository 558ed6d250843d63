"""Application settings loaded from environment variables (+ optional .env)."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the FAAE Projetos core service.

    Every field can be overridden with an environment variable prefixed
    with ``FAAE_`` (e.g. ``FAAE_DATABASE_URL``).
    """

    model_config = SettingsConfigDict(
        env_prefix="FAAE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "FAAE Projetos Core API"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./faae.db"

    # CORS
    cors_origins: list[str] = ["*"]

    # File storage
    upload_dir: str = "uploads"
    max_upload_size_mb: int = 500

    # Search assistant (language model is optional)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    search_timeout_seconds: float = 15.0

    # Real-time fan-out reconnect policy advertised to clients
    ws_max_reconnect_attempts: int = 5
    ws_reconnect_base_seconds: float = 1.0
    ws_reconnect_max_seconds: float = 30.0

    # Reports
    report_company_name: str = "FAAE PROJETOS"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
