"""Tool handler mixins composed into the tool dispatcher."""

from services.handlers.base import ExecutionRun, HandlerBase
from services.handlers.projects import WorkspaceHandlers
from services.handlers.search import SearchHandlers
from services.handlers.tables import TableHandlers
from services.handlers.tasks import TaskHandlers
from services.handlers.timeline import TimelineHandlers

__all__ = [
    "ExecutionRun",
    "HandlerBase",
    "SearchHandlers",
    "TaskHandlers",
    "WorkspaceHandlers",
    "TableHandlers",
    "TimelineHandlers",
]
