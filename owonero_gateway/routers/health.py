"""Health-check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from owonero_gateway.models.responses import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    """Basic liveness probe."""
    return HealthResponse(ok=True)
