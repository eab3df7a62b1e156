"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Coordinator and driver settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Session lifecycle
    session_ttl_seconds: Optional[float] = None  # None = sessions never expire
    idempotent_finalize: bool = False
    max_finalize_receipts: int = 1024
    validate_sender: bool = True

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_file_name: str = "relay.log"
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 3

    # Driver
    relay_url: str = "http://localhost:8080"
    quorum_poll_interval: float = 2.0
    round_poll_interval: float = 2.0
    transaction_poll_interval: float = 1.0
    driver_timeout_seconds: Optional[float] = 600.0
    request_timeout_seconds: float = 10.0
    max_rounds: int = 16
    confirm_before_finalize: bool = True
    share_dir: Path = Path("shares")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("session_ttl_seconds", "driver_timeout_seconds", mode="before")
    @classmethod
    def parse_optional_seconds(cls, value):
        if value in (None, "", "none", "None", "0", 0):
            return None
        return value

    @field_validator("relay_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"


# Global settings instance
settings = Settings()
