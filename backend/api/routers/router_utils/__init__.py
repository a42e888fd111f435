"""Shared helpers for API routers."""

from .error_handling import handle_context_errors

__all__ = ["handle_context_errors"]
