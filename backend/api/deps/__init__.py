"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    ServiceCache,
    get_context_store,
    get_service_cache,
    get_session_manager,
    get_settings_dependency,
)

__all__ = [
    "ServiceCache",
    "get_context_store",
    "get_service_cache",
    "get_session_manager",
    "get_settings_dependency",
]
