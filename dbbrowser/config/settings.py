"""Configuration settings for the dbbrowser application."""

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database Configuration
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=3306)
    db_name: str = Field(default="warehouse_db")
    db_user: str = Field(default="root")
    db_password: str = Field(default="")

    # Connection Pool Settings
    db_pool_size: int = Field(default=5, ge=1, le=32)

    # Handshake and request timing (seconds)
    poll_interval: float = Field(default=0.2)
    connect_timeout: float = Field(default=5.0)
    request_timeout: float = Field(default=30.0)

    # Notifications
    notification_duration: float = Field(default=3.0)

    # Application Configuration
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # CLI Configuration
    default_output_format: str = Field(default="table")
    max_display_rows: int = Field(default=50, ge=1)

    @field_validator("poll_interval", "connect_timeout", "request_timeout", "notification_duration")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return value

    @field_validator("default_output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("table", "json", "csv", "plain"):
            raise ValueError("must be one of: table, json, csv, plain")
        return value

    @model_validator(mode="after")
    def _poll_within_timeout(self) -> "Settings":
        if self.poll_interval >= self.connect_timeout:
            raise ValueError("poll_interval must be smaller than connect_timeout")
        return self

    @property
    def connection_params(self):
        """Connection parameters for the configured database."""
        from ..database.models import ConnectionParams

        return ConnectionParams(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            db_name=self.db_name,
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
