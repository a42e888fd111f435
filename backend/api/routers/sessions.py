"""
Context session API endpoints.

Routes:
- POST /context/sessions - Create new session
- GET /context/sessions - List registered session IDs
- POST /context/sessions/{id}/initialize - Load a stored session
- PUT /context/sessions/{id}/state - Merge a partial state update
- POST /context/sessions/{id}/queries - Record a query
- POST /context/sessions/{id}/recover - Recover a corrupted session
- GET /context/sessions/{id}/health - Session health report
- GET /context/sessions/{id}/analytics - Session usage summary
- POST /context/sessions/{id}/permissions/check - Domain permission check
- DELETE /context/sessions/{id} - Terminate session
- GET /context/stats - Registry counts
- POST /context/maintenance - Run a maintenance sweep

Dependencies: backend.core.session_manager, backend.models
System role: Thin HTTP adapter over the session manager
"""

from fastapi import APIRouter, Depends, HTTPException, status

from backend.api.deps import get_session_manager
from backend.api.routers.router_utils import handle_context_errors
from backend.core.permissions import has_permission
from backend.core.session_manager import BISessionManager
from backend.models.context import AnalysisSession, QueryHistoryEntry
from backend.models.session import (
    ActiveSessionsResponse,
    AddQueryRequest,
    CreateSessionRequest,
    MaintenanceResult,
    PermissionCheckRequest,
    PermissionCheckResponse,
    SessionAnalytics,
    SessionCreationOptions,
    SessionHealth,
    SessionRecoveryOptions,
    SessionStats,
    SessionWithContext,
    UpdateSessionStateRequest,
)

router = APIRouter(prefix="/context", tags=["context"])


@router.post(
    "/sessions",
    response_model=SessionWithContext,
    status_code=status.HTTP_201_CREATED,
)
@handle_context_errors
async def create_session(
    request: CreateSessionRequest,
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionWithContext:
    """
    Create a session, anonymous unless a user context is supplied.

    Raises:
        HTTPException(503): Context store unavailable
    """
    options = SessionCreationOptions(
        user_context=request.user_context,
        initial_state=request.initial_state,
        domains=request.domains,
        enable_recovery=request.enable_recovery,
        custom_timeout=request.custom_timeout,
    )
    return await manager.create_session(options)


@router.get("/sessions", response_model=ActiveSessionsResponse)
async def list_active_sessions(
    manager: BISessionManager = Depends(get_session_manager),
) -> ActiveSessionsResponse:
    """List sessions registered in this process."""
    session_ids = manager.get_active_sessions()
    return ActiveSessionsResponse(session_ids=session_ids, total=len(session_ids))


@router.post("/sessions/{session_id}/initialize", response_model=SessionWithContext)
@handle_context_errors
async def initialize_session(
    session_id: str,
    recovery_options: SessionRecoveryOptions | None = None,
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionWithContext:
    """
    Load a stored session into this process.

    Raises:
        HTTPException(404): Session not stored and no anonymous fallback requested
        HTTPException(503): Context store unavailable
    """
    result = await manager.initialize_session(session_id, recovery_options)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    return result


@router.put("/sessions/{session_id}/state", response_model=AnalysisSession)
@handle_context_errors
async def update_session_state(
    session_id: str,
    request: UpdateSessionStateRequest,
    manager: BISessionManager = Depends(get_session_manager),
) -> AnalysisSession:
    """
    Shallow-merge a state update into a registered session.

    Raises:
        HTTPException(404): Session not registered (initialize it first)
        HTTPException(503): Context store unavailable
    """
    return await manager.update_session_state(
        session_id, request.state_update, create_snapshot=request.create_snapshot
    )


@router.post(
    "/sessions/{session_id}/queries",
    response_model=QueryHistoryEntry,
    status_code=status.HTTP_201_CREATED,
)
@handle_context_errors
async def add_query(
    session_id: str,
    request: AddQueryRequest,
    manager: BISessionManager = Depends(get_session_manager),
) -> QueryHistoryEntry:
    """
    Record a query and its response on a session.

    Raises:
        HTTPException(400): Blank query
        HTTPException(404): Session not stored
        HTTPException(503): Context store unavailable
    """
    return await manager.add_query_to_session(
        session_id, request.query, request.response, request.metadata
    )


@router.post("/sessions/{session_id}/recover", response_model=SessionWithContext)
@handle_context_errors
async def recover_session(
    session_id: str,
    options: SessionRecoveryOptions | None = None,
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionWithContext:
    """
    Recover a corrupted or failed session.

    Raises:
        HTTPException(409): Recovery failed or attempt ceiling reached
    """
    result = await manager.recover_session(session_id, options)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session could not be recovered: {session_id}",
        )
    return result


@router.get("/sessions/{session_id}/health", response_model=SessionHealth)
async def check_session_health(
    session_id: str,
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionHealth:
    """Health report for a registered session (never fails)."""
    return await manager.check_session_health(session_id)


@router.get("/sessions/{session_id}/analytics", response_model=SessionAnalytics)
@handle_context_errors
async def get_session_analytics(
    session_id: str,
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionAnalytics:
    """
    Usage summary of a session.

    Raises:
        HTTPException(404): Session neither registered nor stored
    """
    analytics = await manager.get_session_analytics(session_id)
    if analytics is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    return analytics


@router.post(
    "/sessions/{session_id}/permissions/check",
    response_model=PermissionCheckResponse,
)
async def check_permission(
    session_id: str,
    request: PermissionCheckRequest,
    manager: BISessionManager = Depends(get_session_manager),
) -> PermissionCheckResponse:
    """
    Check a domain action against a registered session's permissions.

    Raises:
        HTTPException(404): Session not registered
    """
    registered = manager.get_session(session_id)
    if registered is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    allowed = has_permission(
        registered.context, request.domain, request.action, request.department
    )
    return PermissionCheckResponse(
        session_id=session_id,
        domain=request.domain,
        action=request.action,
        allowed=allowed,
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
@handle_context_errors
async def terminate_session(
    session_id: str,
    manager: BISessionManager = Depends(get_session_manager),
) -> None:
    """Terminate a session; terminating an unknown session succeeds."""
    await manager.terminate_session(session_id, reason="manual")


@router.get("/stats", response_model=SessionStats)
async def get_session_stats(
    manager: BISessionManager = Depends(get_session_manager),
) -> SessionStats:
    """Counts over the sessions registered in this process."""
    return manager.get_session_stats()


@router.post("/maintenance", response_model=MaintenanceResult)
@handle_context_errors
async def run_maintenance(
    manager: BISessionManager = Depends(get_session_manager),
) -> MaintenanceResult:
    """Run one maintenance sweep on demand."""
    return await manager.perform_maintenance_cleanup()
