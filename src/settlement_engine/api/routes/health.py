"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel

from settlement_engine.api.dependencies import Service

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    store: str
    period: str | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(service: Service) -> HealthResponse:
    """Check API and settlement store health."""
    selection = service.cache.selection
    store_status = "unhealthy"
    try:
        await service.store.list_period(selection.period_key if selection else "")
        store_status = "healthy"
    except Exception:
        store_status = "unhealthy"

    return HealthResponse(
        status="healthy" if store_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        store=store_status,
        period=selection.period_key if selection else None,
    )
