"""
Observability configuration settings.

Settings for logging and request correlation.

Dependencies: pydantic_settings
System role: Observability configuration for logging and request tracing
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilitySettings(BaseSettings):
    """Observability configuration for logging and correlation IDs."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OBSERVABILITY_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        description="Root logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    enable_request_logging: bool = Field(
        default=True,
        description="Log every HTTP request with timing",
    )
    correlation_header: str = Field(
        default="X-Correlation-ID",
        description="Header carrying the request correlation ID",
    )
