"""Assistant tool endpoints.

Exposes the tool catalog, single and batch tool execution, and replay of
recorded undo batches.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import get_data_actions, get_tool_dispatcher
from core.exceptions import BadRequestError
from llm.models import ToolDefinition
from schemas.assistant_tools import (
    ToolBatchRequest,
    ToolBatchResponse,
    ToolContext,
    ToolExecuteRequest,
    ToolExecuteResponse,
    ToolListResponse,
    UndoJournal,
    UndoRequest,
)
from schemas.undo import UndoApplyResult
from schemas.workspace import ExecutionContext
from services.data_actions import DataActions
from services.tool_dispatcher import ToolDispatcher
from services.undo_capture import UndoTracker, apply_undo_batches

logger = logging.getLogger(__name__)

router = APIRouter()

TOOL_FORMATS = {
    "catalog": ToolDefinition.to_catalog_entry,
    "openai": ToolDefinition.to_openai_format,
    "anthropic": ToolDefinition.to_anthropic_format,
    "prompt": ToolDefinition.to_prompt_format,
}


def _execution_context(context: ToolContext, tracker: Optional[UndoTracker]) -> ExecutionContext:
    return ExecutionContext(**context.model_dump(), undo_tracker=tracker)


def _journal(tracker: Optional[UndoTracker]) -> Optional[UndoJournal]:
    if tracker is None:
        return None
    return UndoJournal(batches=tracker.batches, skipped_tools=tracker.skipped_tools)


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(
    groups: Optional[str] = Query(None, description="Comma-separated tool groups to add to the core set"),
    format: str = Query("catalog", description="catalog, openai, anthropic or prompt"),
    dispatcher: ToolDispatcher = Depends(get_tool_dispatcher),
):
    """List the tools available for the requested groups."""
    formatter = TOOL_FORMATS.get(format)
    if formatter is None:
        raise BadRequestError(f"Unknown tool format '{format}'. Use one of: {', '.join(TOOL_FORMATS)}")

    group_list: List[str] = [g.strip() for g in (groups or "").split(",") if g.strip()]
    tools = dispatcher.get_available_tools(group_list)
    return ToolListResponse(format=format, count=len(tools), tools=[formatter(tool) for tool in tools])


@router.post("/tools/execute", response_model=ToolExecuteResponse)
async def execute_tool(
    request: ToolExecuteRequest,
    dispatcher: ToolDispatcher = Depends(get_tool_dispatcher),
):
    """Execute a single tool call."""
    tracker = UndoTracker() if request.capture_undo else None
    result = await dispatcher.execute(request.call, _execution_context(request.context, tracker))
    return ToolExecuteResponse(result=result.to_dict(), undo=_journal(tracker))


@router.post("/tools/execute-batch", response_model=ToolBatchResponse)
async def execute_tool_batch(
    request: ToolBatchRequest,
    dispatcher: ToolDispatcher = Depends(get_tool_dispatcher),
):
    """Execute several tool calls, in order or concurrently."""
    tracker = UndoTracker() if request.capture_undo else None
    context = _execution_context(request.context, tracker)
    if request.mode == "parallel":
        results = await dispatcher.execute_parallel(request.calls, context)
    else:
        results = await dispatcher.execute_sequentially(request.calls, context)

    logger.info(
        f"Executed batch of {len(results)} tool calls ({request.mode}); "
        f"{sum(1 for r in results if not r.success)} failed"
    )
    return ToolBatchResponse(results=[r.to_dict() for r in results], undo=_journal(tracker))


@router.post("/undo", response_model=UndoApplyResult)
async def undo_tool_calls(
    request: UndoRequest,
    actions: DataActions = Depends(get_data_actions),
):
    """Replay undo batches, newest first."""
    return await apply_undo_batches(actions, request.batches)
