"""
Configuration management module.

Provides centralized, type-safe configuration using Pydantic Settings.
All config modules support environment variable mapping with validation.
"""

from backend.configs.database import DatabaseSettings
from backend.configs.observability import ObservabilitySettings
from backend.configs.session import SessionSettings
from backend.configs.settings import Settings, get_settings

__all__ = [
    "DatabaseSettings",
    "ObservabilitySettings",
    "SessionSettings",
    "Settings",
    "get_settings",
]
