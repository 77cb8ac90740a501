"""Configuration management for mail-retention.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAIL_RETENTION_ prefix (e.g., MAIL_RETENTION_RULES_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAIL_RETENTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user id the client acts on",
    )
    gmail_scope: str = Field(
        default="https://mail.google.com/",
        description=(
            "OAuth scope used for Gmail access. Permanent deletion (batchDelete) "
            "requires the full https://mail.google.com/ scope."
        ),
    )

    # Rules
    rules_path: Path = Field(
        default=Path("rules.json"),
        description="Path to the JSON file holding the retention rules",
    )

    # Engine Configuration
    page_size: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Maximum number of message ids requested per search page",
    )
    max_pages: int = Field(
        default=0,
        ge=0,
        description="Maximum number of search pages per label (0 means unbounded)",
    )
    batch_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Number of message ids per batch disposal call",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum number of chunks disposed concurrently for one rule label",
    )
    marker_prefix: str = Field(
        default="mail-retention",
        min_length=1,
        description="Reserved label namespace for processed-message marker labels",
    )
    days_per_month: int = Field(
        default=30,
        ge=1,
        description="Days counted per month when rendering retention ages",
    )
    days_per_year: int = Field(
        default=365,
        ge=1,
        description="Days counted per year when rendering retention ages",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retries for transient Gmail API failures",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial delay in seconds between transport retries",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
