"""Health API Endpoint.

Endpoints:
- GET /health - Liveness check with service version
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

from recallforge import __version__

SERVICE_NAME = "recallforge"

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Overall health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Application version")
    timestamp: str = Field(..., description="ISO 8601 timestamp")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report that the scheduler is up."""
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
