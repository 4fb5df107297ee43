"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel, Field

from core.config import get_cached_settings
from services.tool_catalog import TOOL_CATALOG

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    services: Dict[str, str] = Field(default_factory=dict)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Check service health."""
    settings = get_cached_settings()
    services = {
        "api": "ok",
        "tool_catalog": "ok" if TOOL_CATALOG else "empty",
        "atomic_rpc": "preferred" if settings.PREFER_ATOMIC_RPC else "disabled",
    }
    return HealthResponse(
        status="ok" if TOOL_CATALOG else "degraded",
        version=settings.VERSION,
        services=services,
    )
