"""
Domain permission checks.

Dependencies: backend.models.context
System role: Access decisions over a context's permission matrix
"""

from backend.models.context import DomainType, UserContext

ACTIONS = ("read", "query", "export")


def is_department_authorized(context: UserContext, department: str) -> bool:
    """Anonymous contexts are never authorized for a department."""
    if context.is_anonymous:
        return False
    return department in context.department_scope


def has_permission(
    context: UserContext,
    domain: DomainType | str,
    action: str,
    department: str | None = None,
) -> bool:
    """
    Check whether a context may perform an action on a domain.

    Args:
        context: Context to check
        domain: Target domain
        action: One of read, query, export
        department: Optional department the request is scoped to

    Returns:
        bool: True if allowed

    Raises:
        ValueError: If action is not a known action
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    permissions = context.permissions.for_domain(domain)
    if not getattr(permissions, action):
        return False

    if department is None:
        return True
    if not is_department_authorized(context, department):
        return False
    # Domain-level department lists narrow the context scope further
    return permissions.departments is None or department in permissions.departments
