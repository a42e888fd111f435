"""
Token refresh scheduling.

Schedules a background refresh of an authenticated session's token shortly
before it expires. The refresh itself is delegated to an injected callable
(an auth-provider client); this service only owns the timers.

Dependencies: backend.core.scheduler, backend.observability
System role: Per-session token refresh timers
"""

import logging
from typing import Awaitable, Callable

from backend.core.exceptions import TokenRefreshError
from backend.core.scheduler import Scheduler, TimerHandle
from backend.models.context import UserContext
from backend.observability.log_utils import log_exception_with_context, log_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)

TokenRefresher = Callable[[str, str], Awaitable[None]]


class TokenRefreshService:
    """
    Per-session token refresh timers.

    Attributes:
        refresh_threshold_seconds: Lead time before expiry at which to refresh
    """

    def __init__(
        self,
        scheduler: Scheduler,
        refresh_threshold_seconds: float = 15 * 60,
        refresher: TokenRefresher | None = None,
    ) -> None:
        """
        Initialize the refresh service.

        Args:
            scheduler: Clock/timer source
            refresh_threshold_seconds: Refresh this long before expiry
            refresher: Async callable ``(session_id, user_id)`` performing the refresh
        """
        self._scheduler = scheduler
        self._refresher = refresher
        self.refresh_threshold_seconds = refresh_threshold_seconds
        self._timers: dict[str, TimerHandle] = {}

    def schedule_refresh(self, session_id: str, context: UserContext) -> bool:
        """
        Schedule a refresh for an authenticated session.

        Replaces any refresh already scheduled for the session. Anonymous
        contexts and tokens already inside the threshold are not scheduled.

        Args:
            session_id: Session to refresh
            context: Context carrying user ID and token expiry

        Returns:
            bool: True if a timer was armed
        """
        if context.is_anonymous:
            return False

        self.clear_refresh(session_id)

        remaining = (context.token_expiry - self._scheduler.now()).total_seconds()
        delay = remaining - self.refresh_threshold_seconds
        if delay <= 0:
            return False

        user_id = context.user_id

        async def _refresh() -> None:
            self._timers.pop(session_id, None)
            await self._perform_refresh(session_id, user_id)

        self._timers[session_id] = self._scheduler.call_later(
            delay, _refresh, name=f"token-refresh:{session_id}"
        )
        log_with_context(
            logger,
            logging.DEBUG,
            "Scheduled token refresh",
            session_id=session_id,
            delay_seconds=round(delay, 1),
        )
        return True

    async def _perform_refresh(self, session_id: str, user_id: str) -> None:
        if self._refresher is None:
            log_with_context(
                logger,
                logging.WARNING,
                "No token refresher configured; token will expire",
                session_id=session_id,
            )
            return
        try:
            await self._refresher(session_id, user_id)
        except Exception as exc:
            # The next request on the session triggers context reconstruction
            error = TokenRefreshError(session_id, str(exc))
            log_exception_with_context(logger, "Token refresh failed", error, session_id=session_id)
            return
        log_with_context(logger, logging.INFO, "Token refreshed", session_id=session_id)

    def clear_refresh(self, session_id: str) -> None:
        """Cancel the refresh scheduled for a session, if any."""
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def clear_all_refresh(self) -> None:
        """Cancel every scheduled refresh."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def is_scheduled(self, session_id: str) -> bool:
        return session_id in self._timers
