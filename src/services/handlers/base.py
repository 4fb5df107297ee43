"""Shared plumbing for tool handler mixins.

Handlers are ``async def _name(self, args: Dict, run: ExecutionRun) -> ToolResult``
methods mixed into ``ToolDispatcher``. They may raise ``ToolError``
subclasses; the dispatcher turns those into failed results.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from core.config import Settings
from core.exceptions import ToolValidationError
from llm.models import ToolCall, ToolResult
from schemas.workspace import ExecutionContext
from services.data_actions import ActionResult, DataActions
from services.entity_resolver import EntityResolver
from services.field_matching import is_uuid

logger = logging.getLogger(__name__)


@dataclass
class ExecutionRun:
    """State of one ``execute`` call; dropped when the call returns."""

    context: ExecutionContext
    resolver: EntityResolver

    @property
    def workspace_id(self) -> Optional[str]:
        return self.context.workspace_id

    @property
    def has_undo_tracker(self) -> bool:
        return self.context.undo_tracker is not None


def pick(args: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Keys present in ``args`` (explicit nulls included)."""
    return {key: args[key] for key in keys if key in args}


def string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value if item]
    return []


async def gather_all(*awaitables: Any) -> List[Any]:
    """Await every awaitable concurrently; the first failure is re-raised once all have finished."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


class HandlerBase:
    """Helpers available to every handler mixin."""

    actions: DataActions
    settings: Settings

    async def execute(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        raise NotImplementedError

    @staticmethod
    def _wrap(result: ActionResult, hint: Optional[str] = None) -> ToolResult:
        if result.ok:
            return ToolResult(success=True, data=result.data, hint=hint)
        return ToolResult(success=False, error=result.error, error_type="execution_error")

    async def _call(self, action: str, params: Dict[str, Any]) -> ToolResult:
        return self._wrap(await self.actions.invoke(action, params))

    async def _nested(self, name: str, arguments: Dict[str, Any], run: ExecutionRun) -> ToolResult:
        """Run another tool through ``execute`` so it records its own undo batch."""
        return await self.execute(ToolCall(name=name, arguments=arguments), run.context)

    @staticmethod
    def _require_workspace(run: ExecutionRun, explicit: Optional[str] = None) -> str:
        workspace_id = explicit or run.workspace_id
        if not workspace_id:
            raise ToolValidationError("No workspace selected")
        return workspace_id

    @staticmethod
    def _require_uuids(values: Iterable[Any], message: str) -> None:
        for value in values:
            if not is_uuid(value):
                raise ToolValidationError(message)
