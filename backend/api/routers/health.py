"""
Health check API endpoints.

Routes: GET /health

Dependencies: backend.core.context_store, backend.configs
System role: Health check HTTP API
"""

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from backend.api.deps import get_context_store, get_settings_dependency
from backend.configs import Settings
from backend.core.context_store import ContextStore
from backend.models.session import StoreHealth


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    database: StoreHealth


router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check(
    response: Response,
    store: ContextStore = Depends(get_context_store),
    settings: Settings = Depends(get_settings_dependency),
) -> HealthResponse:
    """Service health including context store reachability; 503 when degraded."""
    store_health = await store.health_check()
    if not store_health.healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="healthy" if store_health.healthy else "degraded",
        service=settings.app_name,
        database=store_health,
    )
