"""Tool Dispatcher for the workspace assistant.

Routes tool calls from the LLM to handler methods. Handlers live in
mixins under ``services.handlers``; this module owns the routing table,
argument preparation, error conversion, timing and undo journaling.

Tool Categories:
- Control (1): request_tool_groups
- Search (19): entity searches, semantic search, entity lookup, table schema
- Task (15): task items, bulk task operations, assignees, tags, subtasks, comments
- Project / Tab / Block (10): workspace structure, charts
- Table (17): tables, fields, rows, field-name updates, composite create/update
- Timeline (5): events and dependencies
- Property / Client / Doc / File / Comment (17)
- Workspace (1): reindex_workspace_content
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from json_repair import repair_json
from jsonschema import Draft7Validator

from core.config import Settings, get_cached_settings
from core.exceptions import ToolError, ToolValidationError
from core.identity_context import IdentityContext
from llm.models import ToolCall, ToolDefinition, ToolRecoveryStrategy, ToolResult
from schemas.workspace import ExecutionContext
from services.data_actions import DataActions, HttpDataActions
from services.entity_resolver import EntityResolver
from services.handlers import (
    ExecutionRun,
    SearchHandlers,
    TableHandlers,
    TaskHandlers,
    TimelineHandlers,
    WorkspaceHandlers,
)
from services.tool_catalog import TOOL_CATALOG, get_tools_by_groups
from services.undo_capture import capture_undo_steps_before, is_write_tool, record_undo

logger = logging.getLogger(__name__)

_JSON_TYPES = {"array": list, "object": dict}

# Handler errors the caller can fix by rephrasing the request
_CLARIFY_ERROR_TYPES = ("validation", "ambiguous", "not_found")


def get_tool_counts() -> Dict[str, int]:
    """Get tool counts by category."""
    counts: Dict[str, int] = {}
    for tool in TOOL_CATALOG.values():
        counts[tool.category] = counts.get(tool.category, 0) + 1
    return counts


class ToolDispatcher(SearchHandlers, TaskHandlers, WorkspaceHandlers, TableHandlers, TimelineHandlers):
    """Executes tool calls against the workspace data actions.

    One dispatcher may serve many concurrent calls: per-call state lives in
    an ``ExecutionRun`` created by ``execute``.
    """

    # Map tool names to their handler method names
    TOOL_HANDLER_MAP: Dict[str, str] = {
        # Control + workspace
        "request_tool_groups": "_request_tool_groups",
        "reindex_workspace_content": "_reindex_workspace_content",
        # Search tools
        "unstructured_search_workspace": "_unstructured_search_workspace",
        "search_tasks": "_search_tasks",
        "search_projects": "_search_projects",
        "search_tabs": "_search_tabs",
        "search_clients": "_search_clients",
        "search_workspace_members": "_search_workspace_members",
        "search_tables": "_search_tables",
        "search_table_rows": "_search_table_rows",
        "search_timeline_events": "_search_timeline_events",
        "search_blocks": "_search_blocks",
        "search_docs": "_search_docs",
        "search_doc_content": "_search_doc_content",
        "search_files": "_search_files",
        "search_tags": "_search_tags",
        "search_all": "_search_all",
        "resolve_entity_by_name": "_resolve_entity_by_name",
        "get_entity_by_id": "_get_entity_by_id",
        "get_entity_context": "_get_entity_context",
        "get_table_schema": "_get_table_schema",
        # Task tools
        "create_task_item": "_create_task_item",
        "bulk_create_tasks": "_bulk_create_tasks",
        "update_task_item": "_update_task_item",
        "bulk_update_task_items": "_bulk_update_task_items",
        "bulk_move_task_items": "_bulk_move_task_items",
        "duplicate_tasks_to_block": "_duplicate_tasks_to_block",
        "create_task_board_from_tasks": "_create_task_board_from_tasks",
        "delete_task_item": "_delete_task_item",
        "set_task_assignees": "_set_task_assignees",
        "bulk_set_task_assignees": "_bulk_set_task_assignees",
        "set_task_tags": "_set_task_tags",
        "create_task_subtask": "_create_task_subtask",
        "update_task_subtask": "_update_task_subtask",
        "delete_task_subtask": "_delete_task_subtask",
        "create_task_comment": "_create_task_comment",
        # Project, tab and block tools
        "create_project": "_create_project",
        "update_project": "_update_project",
        "delete_project": "_delete_project",
        "create_tab": "_create_tab",
        "update_tab": "_update_tab",
        "delete_tab": "_delete_tab",
        "create_block": "_create_block",
        "create_chart_block": "_create_chart_block",
        "update_block": "_update_block",
        "delete_block": "_delete_block",
        # Table tools
        "create_table": "_create_table",
        "create_field": "_create_field",
        "bulk_create_fields": "_bulk_create_fields",
        "update_field": "_update_field",
        "delete_field": "_delete_field",
        "create_row": "_create_row",
        "update_row": "_update_row",
        "update_cell": "_update_cell",
        "delete_row": "_delete_row",
        "delete_rows": "_delete_rows",
        "bulk_insert_rows": "_bulk_insert_rows",
        "bulk_update_rows": "_bulk_update_rows",
        "update_table_rows_by_field_names": "_update_table_rows_by_field_names",
        "bulk_update_rows_by_field_names": "_bulk_update_rows_by_field_names",
        "create_table_full": "_create_table_full",
        "update_table_full": "_update_table_full",
        "delete_table": "_delete_table",
        # Timeline tools
        "create_timeline_event": "_create_timeline_event",
        "update_timeline_event": "_update_timeline_event",
        "delete_timeline_event": "_delete_timeline_event",
        "create_timeline_dependency": "_create_timeline_dependency",
        "delete_timeline_dependency": "_delete_timeline_dependency",
        # Property tools
        "create_property_definition": "_create_property_definition",
        "update_property_definition": "_update_property_definition",
        "delete_property_definition": "_delete_property_definition",
        "set_entity_property": "_set_entity_property",
        "remove_entity_property": "_remove_entity_property",
        # Client, doc, file and comment tools
        "create_client": "_create_client",
        "update_client": "_update_client",
        "delete_client": "_delete_client",
        "create_doc": "_create_doc",
        "update_doc": "_update_doc",
        "archive_doc": "_archive_doc",
        "delete_doc": "_delete_doc",
        "file_analysis_query": "_file_analysis_query",
        "rename_file": "_rename_file",
        "create_comment": "_create_comment",
        "update_comment": "_update_comment",
        "delete_comment": "_delete_comment",
    }

    def __init__(self, actions: Optional[DataActions] = None, settings: Optional[Settings] = None):
        """Initialize the tool dispatcher.

        Args:
            actions: Data actions port; defaults to the HTTP adapter built from settings
            settings: Settings; defaults to the cached application settings
        """
        self.settings = settings or get_cached_settings()
        self.actions = actions or HttpDataActions(settings=self.settings)

        # Validate tool handlers at initialization
        self._validate_tool_handlers()

    def _validate_tool_handlers(self) -> None:
        """Validate that all catalog tools have corresponding handler methods.

        Runs at construction so a missing handler is logged at startup
        rather than surfacing as an AttributeError mid-conversation.
        """
        missing_handlers = []
        for tool_name in TOOL_CATALOG:
            handler_name = self.TOOL_HANDLER_MAP.get(tool_name)
            if not handler_name:
                missing_handlers.append(f"Tool '{tool_name}' has no entry in TOOL_HANDLER_MAP")
            elif not hasattr(self, handler_name):
                missing_handlers.append(f"Tool '{tool_name}' handler method '{handler_name}' not found")

        if missing_handlers:
            logger.error(f"Tool validation failed - {len(missing_handlers)} missing handlers:")
            for message in missing_handlers:
                logger.error(f"  - {message}")
        else:
            logger.debug(f"All {len(TOOL_CATALOG)} tool handlers validated")

    def get_available_tools(self, groups: Optional[Iterable[str]] = None) -> List[ToolDefinition]:
        """Core tools plus the requested tool groups."""
        return get_tools_by_groups(groups)

    # -------------------------------------------------------------------------
    # Argument preparation
    # -------------------------------------------------------------------------

    @staticmethod
    def _prepare_arguments(tool: ToolDefinition, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce stringified array/object arguments and check required params.

        LLMs regularly send ``"[{...}]"`` where a list is expected; those
        strings are parsed leniently. Anything still not matching its type
        is left for the handler to reject.
        """
        properties = tool.parameters.get("properties", {})
        prepared = dict(arguments or {})
        for key, value in prepared.items():
            expected = _JSON_TYPES.get((properties.get(key) or {}).get("type"))
            if expected is None or not isinstance(value, str):
                continue
            repaired = repair_json(value, return_objects=True)
            if isinstance(repaired, expected):
                prepared[key] = repaired

        validator = Draft7Validator({"type": "object", "required": tool.required_params})
        missing = sorted({
            name
            for error in validator.iter_errors(prepared)
            if error.validator == "required"
            for name in error.validator_value
            if name not in error.instance
        })
        if missing:
            raise ToolValidationError(f"Missing required parameter(s) for {tool.name}: {', '.join(missing)}")
        return prepared

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        """Execute one tool call.

        Args:
            call: Tool name and raw arguments from the LLM
            context: Ambient workspace/tab/project defaults and the optional undo tracker

        Returns:
            ToolResult with success/failure and data; never raises
        """
        start_time = time.time()

        tool = TOOL_CATALOG.get(call.name)
        handler_name = self.TOOL_HANDLER_MAP.get(call.name)
        if not tool or not handler_name:
            return ToolResult(
                success=False,
                error=f"Tool '{call.name}' not found",
                error_type="not_found",
                recovery_strategy=ToolRecoveryStrategy.FAIL,
            )

        logger.info(f"Invoking tool: {call.name}")

        try:
            args = self._prepare_arguments(tool, call.arguments)
            run = ExecutionRun(context=context, resolver=EntityResolver(self.actions, context, self.settings))

            tracker = context.undo_tracker
            pre_steps = []
            if tracker is not None and is_write_tool(call.name):
                pre_steps = await self._capture_before(call.name, args, context)

            handler = getattr(self, handler_name)
            if self.settings.ENABLE_TEST_MODE and context.workspace_id and context.user_id:
                async with IdentityContext(context.workspace_id, context.user_id):
                    result = await handler(args, run)
            else:
                result = await handler(args, run)

            if tracker is not None and is_write_tool(call.name):
                record_undo(tracker, call.name, pre_steps, result)

            execution_time = int((time.time() - start_time) * 1000)
            result.execution_time_ms = execution_time
            logger.info(f"Tool {call.name} completed in {execution_time}ms (success={result.success})")
            return result

        except ToolError as e:
            logger.info(f"Tool {call.name} rejected ({e.error_type}): {e.message}")
            strategy = (
                ToolRecoveryStrategy.CLARIFY if e.error_type in _CLARIFY_ERROR_TYPES else ToolRecoveryStrategy.FAIL
            )
            return ToolResult(
                success=False,
                error=e.message,
                error_type=e.error_type,
                recovery_strategy=strategy,
                execution_time_ms=int((time.time() - start_time) * 1000),
            )

        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}", exc_info=True)
            return ToolResult(
                success=False,
                error=str(e),
                error_type="execution_error",
                recovery_strategy=ToolRecoveryStrategy.RETRY,
                execution_time_ms=int((time.time() - start_time) * 1000),
            )

    async def _capture_before(self, tool_name: str, args: Dict[str, Any], context: ExecutionContext) -> List[Any]:
        try:
            return await capture_undo_steps_before(
                self.actions, tool_name, args, context.workspace_id, self.settings.ROW_SCAN_LIMIT
            )
        except Exception as e:
            # The tool still runs; it just cannot be undone
            logger.warning(f"Undo capture for {tool_name} failed: {e}")
            return []

    async def execute_sequentially(self, calls: List[ToolCall], context: ExecutionContext) -> List[ToolResult]:
        """Execute calls in order; a failed call does not stop the ones after it."""
        results = []
        for call in calls:
            results.append(await self.execute(call, context))
        return results

    async def execute_parallel(self, calls: List[ToolCall], context: ExecutionContext) -> List[ToolResult]:
        """Execute independent calls concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.execute(call, context) for call in calls)))
