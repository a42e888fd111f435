"""
Core business logic module.

Contains the session lifecycle manager, the durable context store, token
refresh scheduling, permission checks and the exception hierarchy.
"""

from backend.core.context_store import ContextStore
from backend.core.exceptions import (
    BIContextException,
    ContextStoreError,
    RecoveryLimitExceededError,
    SessionNotFoundError,
    TokenRefreshError,
    ValidationError,
)
from backend.core.permissions import has_permission, is_department_authorized
from backend.core.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from backend.core.session_manager import ActiveSession, BISessionManager
from backend.core.token_refresh import TokenRefreshService

__all__ = [
    # Exceptions
    "BIContextException",
    "ValidationError",
    "SessionNotFoundError",
    "ContextStoreError",
    "RecoveryLimitExceededError",
    "TokenRefreshError",
    # Business logic
    "ActiveSession",
    "BISessionManager",
    "ContextStore",
    "TokenRefreshService",
    "has_permission",
    "is_department_authorized",
    # Scheduling
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
]
