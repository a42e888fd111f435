"""
Session lifecycle configuration settings.

Timeouts, thresholds and limits used by the session manager, the context
store and the token refresh service.

Dependencies: pydantic, pydantic_settings
System role: Session lifecycle tuning (expiry, recovery, maintenance)
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from backend.configs.base import BaseSettings


class SessionSettings(BaseSettings):
    """Session manager and context store configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SESSION_",
        case_sensitive=False,
        extra="ignore",
    )

    default_timeout_seconds: float = Field(
        default=8 * 60 * 60,
        gt=0,
        description="Session TTL used as token expiry for anonymous contexts",
    )
    refresh_threshold_seconds: float = Field(
        default=15 * 60,
        ge=0,
        description="Refresh tokens this long before they expire",
    )
    max_query_history: int = Field(
        default=100,
        ge=1,
        description="Maximum query history entries kept per session (oldest evicted)",
    )
    max_state_history: int = Field(
        default=100,
        ge=1,
        description="Maximum snapshots kept in a context-state history stack",
    )
    max_recovery_attempts: int = Field(
        default=3,
        ge=1,
        description="Recovery attempts allowed per registered session",
    )
    maintenance_interval_seconds: float = Field(
        default=5 * 60,
        gt=0,
        description="Interval between maintenance sweeps",
    )
    inactivity_threshold_seconds: float = Field(
        default=60 * 60,
        gt=0,
        description="Inactivity after which health checks report an advisory issue",
    )
    recovery_start_offset_seconds: float = Field(
        default=60 * 60,
        ge=0,
        description="Assumed age of a session reconstructed from a snapshot",
    )
    shutdown_task_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for each termination performed during shutdown",
    )
    enable_maintenance: bool = Field(
        default=True,
        description="Run the periodic maintenance sweep after start()",
    )
