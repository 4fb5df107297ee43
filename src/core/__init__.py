"""Core functionality for the Trak assistant service."""

from .config import Settings, get_cached_settings, get_settings
from .exceptions import (
    AmbiguousEntityError,
    BaseAPIException,
    DataActionError,
    EntityNotFoundError,
    ToolError,
    ToolValidationError,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_cached_settings",
    "BaseAPIException",
    "ToolError",
    "ToolValidationError",
    "AmbiguousEntityError",
    "EntityNotFoundError",
    "DataActionError",
]
