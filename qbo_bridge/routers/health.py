"""
Health Check Router

Liveness endpoint for the API process.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from qbo_bridge import __version__
from qbo_bridge.config import get_settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthCheck(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    version: str = __version__
    environment: str


@router.get("", response_model=HealthCheck)
async def health_check() -> HealthCheck:
    """Report that the API is up and which QuickBooks environment it targets."""
    settings = get_settings()
    return HealthCheck(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        environment=settings.qbo_env,
    )
