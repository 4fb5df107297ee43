"""API v1 router."""

from fastapi import APIRouter

from .endpoints import assistant_tools, health

api_router = APIRouter()

api_router.include_router(assistant_tools.router, prefix="/assistant", tags=["assistant-tools"])
api_router.include_router(health.router, prefix="/assistant", tags=["health"])
