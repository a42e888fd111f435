"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: backend.configs, backend.core, backend.boundary
System role: DI container for service injection
"""

from functools import lru_cache

from backend.boundary.db import get_async_session_factory
from backend.configs import Settings, get_settings
from backend.core.context_store import ContextStore
from backend.core.scheduler import AsyncioScheduler
from backend.core.session_manager import BISessionManager
from backend.core.token_refresh import TokenRefresher, TokenRefreshService


class ServiceCache:
    """
    Container for cached service instances.

    The token refresher is configuration rather than a cached instance, so
    it survives ``clear()``.
    """

    def __init__(self, token_refresher: TokenRefresher | None = None):
        self._token_refresher = token_refresher
        self._scheduler = None
        self._context_store = None
        self._token_refresh = None
        self._session_manager = None

    @property
    def scheduler(self) -> AsyncioScheduler:
        """Get cached scheduler."""
        if self._scheduler is None:
            self._scheduler = AsyncioScheduler()
        return self._scheduler

    @property
    def context_store(self) -> ContextStore:
        """Get cached context store bound to the configured database."""
        if self._context_store is None:
            self._context_store = ContextStore(
                get_async_session_factory(),
                settings=get_settings().session,
                clock=self.scheduler.now,
            )
        return self._context_store

    @property
    def token_refresh(self) -> TokenRefreshService:
        """Get cached token refresh service."""
        if self._token_refresh is None:
            self._token_refresh = TokenRefreshService(
                self.scheduler,
                refresh_threshold_seconds=get_settings().session.refresh_threshold_seconds,
                refresher=self._token_refresher,
            )
        return self._token_refresh

    @property
    def session_manager(self) -> BISessionManager:
        """Get cached session manager."""
        if self._session_manager is None:
            self._session_manager = BISessionManager(
                context_store=self.context_store,
                token_refresh_service=self.token_refresh,
                scheduler=self.scheduler,
                settings=get_settings().session,
            )
        return self._session_manager

    @property
    def token_refresher(self) -> TokenRefresher | None:
        """Get the configured auth-provider refresh callable, if any."""
        return self._token_refresher

    def configure_token_refresher(self, refresher: TokenRefresher | None) -> None:
        """
        Set the auth-provider callable used to refresh session tokens.

        Drops any cached refresh service and session manager so the next
        access builds them with the new refresher.

        Args:
            refresher: Async callable ``(session_id, user_id)`` or None
        """
        self._token_refresher = refresher
        self._token_refresh = None
        self._session_manager = None

    def clear(self) -> None:
        """Clear all cached instances."""
        self._scheduler = None
        self._context_store = None
        self._token_refresh = None
        self._session_manager = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_session_manager() -> BISessionManager:
    """
    Get the process-wide session manager.

    Returns:
        BISessionManager: Cached session manager instance
    """
    return get_service_cache().session_manager


def get_context_store() -> ContextStore:
    """
    Get the process-wide context store.

    Returns:
        ContextStore: Cached context store instance
    """
    return get_service_cache().context_store
