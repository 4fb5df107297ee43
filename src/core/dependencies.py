"""Common dependencies for FastAPI endpoints."""

from fastapi import Depends

from services.data_actions import DataActions, HttpDataActions
from services.tool_dispatcher import ToolDispatcher

from .config import Settings, get_cached_settings


def get_app_settings() -> Settings:
    return get_cached_settings()


def get_data_actions(settings: Settings = Depends(get_app_settings)) -> DataActions:
    """HTTP data actions adapter configured from settings."""
    return HttpDataActions(settings=settings)


def get_tool_dispatcher(
    actions: DataActions = Depends(get_data_actions),
    settings: Settings = Depends(get_app_settings),
) -> ToolDispatcher:
    """Tool dispatcher bound to the request's data actions."""
    return ToolDispatcher(actions=actions, settings=settings)
