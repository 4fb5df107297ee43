"""Custom exceptions for the application."""

from typing import Any, Dict, List, Optional


class BaseAPIException(Exception):
    """Base exception for all API exceptions."""

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class BadRequestError(BaseAPIException):
    """Raised when the request is malformed."""

    def __init__(self, message: str = "Bad request", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details)


# =============================================================================
# Tool execution errors
#
# Raised inside tool handlers and converted to a failed ToolResult by the
# dispatcher; error_type is copied onto the result.
# =============================================================================

class ToolError(BaseAPIException):
    """Base class for errors raised while executing a tool call."""

    error_type = "execution_error"

    def __init__(
        self,
        message: str = "Tool execution failed",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, status_code, details)


class ToolValidationError(ToolError):
    """Arguments were malformed or missing; no external call was made."""

    error_type = "validation"

    def __init__(self, message: str = "Invalid tool arguments", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 422, details)


class AmbiguousEntityError(ToolError):
    """A free-text name matched more than one candidate."""

    error_type = "ambiguous"

    def __init__(self, message: str, candidates: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, 409, {"candidates": candidates or []})
        self.candidates = candidates or []


class EntityNotFoundError(ToolError):
    """A referenced entity could not be found."""

    error_type = "not_found"

    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 404, details)


class DataActionError(ToolError):
    """An external data action returned an error."""

    error_type = "execution_error"

    def __init__(self, action: str, message: str, details: Optional[Dict[str, Any]] = None):
        full_details = details or {}
        full_details["action"] = action
        super().__init__(message, 502, full_details)
        self.action = action
