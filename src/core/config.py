"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # CORS - providers and browser tooling call the webhooks cross-origin
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Firestore
    firestore_emulator_host: str | None = None
    gcp_project_id: str = ""

    # Downstream automation (n8n)
    # Status callbacks go to a dedicated endpoint when configured
    status_forward_url: str = ""
    # Used when neither the workspace nor its provider has a webhook URL
    default_forward_url: str = ""
    default_forward_token: str = ""
    forward_timeout_seconds: float = 10.0

    # Inbound media download
    media_download_timeout_seconds: float = 30.0
    media_download_attempts: int = 3
    media_download_backoff_seconds: float = 1.0

    # Outbound dispatch
    provider_send_timeout_seconds: float = 20.0
    provider_status_timeout_seconds: float = 10.0
    zapi_default_base_url: str = "https://api.z-api.io"

    # Outbound media pre-processing
    media_processor_url: str = ""
    media_processor_token: str = ""
    media_processor_timeout_seconds: float = 30.0
    storage_public_marker: str = "/storage/v1/object/public/"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
