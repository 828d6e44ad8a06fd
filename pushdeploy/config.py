"""Application configuration using pydantic-settings."""

import math
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without clobbering values already exported by the service manager
load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Built once at startup and handed to every component; nothing below
    ``pushdeploy.main`` reads the process environment directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    # In-flight deployments are cancelled and recorded as interrupted after this
    shutdown_grace_seconds: float = 30.0

    # Webhook
    webhook_secret: str = Field(default="")

    # Projects and tracing storage
    projects_config_path: Path = Path("config/projects.json")
    trace_db_path: Path = Path("data/traces.db")

    # Deployment
    command_timeout_seconds: float = 300.0
    tolerate_test_failures: bool = True
    health_check_timeout_seconds: float = 10.0
    monitor_interval_seconds: float = 30.0
    monitor_window_seconds: float = 300.0
    monitor_required_healthy: int = 3
    monitor_max_attempts: int = 20
    certificate_min_days_valid: int = 7
    dependency_timeout_seconds: float = 5.0

    # Notifications
    notify_desktop: bool = True
    notify_on_start: bool = False
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 15.0
    notification_concurrency: int = 4

    # WhatsApp Business API
    whatsapp_access_token: str = Field(default="")
    whatsapp_phone_number_id: str = Field(default="")
    whatsapp_recipient: str = Field(default="")
    whatsapp_api_version: str = "v21.0"
    whatsapp_base_url: str = "https://graph.facebook.com"
    whatsapp_template_language: str = "es"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str | None = "logs"
    log_file_name: str = "pushdeploy.log"

    @model_validator(mode="after")
    def check_monitoring_window(self) -> "Settings":
        """Monitoring must be able to observe enough healthy polls to succeed."""
        if self.monitor_required_healthy > self.monitor_attempts:
            raise ValueError(
                f"monitor_required_healthy ({self.monitor_required_healthy}) exceeds "
                f"the {self.monitor_attempts} health polls allowed per monitoring window"
            )
        return self

    @property
    def monitor_attempts(self) -> int:
        """Ceiling on health polls for one monitoring window."""
        max_attempts = max(1, self.monitor_max_attempts)
        if self.monitor_interval_seconds <= 0:
            return max_attempts
        window_attempts = math.ceil(
            self.monitor_window_seconds / self.monitor_interval_seconds
        )
        return max(1, min(max_attempts, window_attempts))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def whatsapp_enabled(self) -> bool:
        """All three WhatsApp credentials are required to enable the channel."""
        return bool(
            self.whatsapp_access_token
            and self.whatsapp_phone_number_id
            and self.whatsapp_recipient
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
