"""Undo capture for write tools.

Before a write tool runs, the rows it is about to change are read back
as pre-images; after a successful create, a delete step is derived from
the created id(s). Both go to the caller-owned ``UndoTracker`` as one
batch per tool call. ``apply_undo_batches`` replays a journal.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from llm.models import ToolResult
from schemas.undo import UndoApplyResult, UndoBatch, UndoStep
from schemas.workspace import TableField
from services.data_actions import DataActions
from services.field_matching import build_row_filters, matches_row_filters

logger = logging.getLogger(__name__)

READ_TOOL_PREFIXES = ("search_", "get_", "resolve_")
READ_TOOL_NAMES = frozenset({
    "request_tool_groups",
    "unstructured_search_workspace",
    "file_analysis_query",
    "reindex_workspace_content",
})

ALLOWED_UNDO_TABLES = frozenset({
    "projects",
    "tabs",
    "blocks",
    "task_items",
    "task_subtasks",
    "task_assignees",
    "task_tag_links",
    "task_comments",
    "tables",
    "table_fields",
    "table_rows",
    "table_comments",
    "timeline_events",
    "timeline_dependencies",
    "property_definitions",
    "entity_properties",
    "clients",
    "docs",
    "files",
})

# tool name -> (storage table, id argument)
SINGLE_ROW_TOOLS = {
    "update_project": ("projects", "project_id"),
    "delete_project": ("projects", "project_id"),
    "update_tab": ("tabs", "tab_id"),
    "delete_tab": ("tabs", "tab_id"),
    "update_block": ("blocks", "block_id"),
    "delete_block": ("blocks", "block_id"),
    "update_task_item": ("task_items", "task_id"),
    "delete_task_item": ("task_items", "task_id"),
    "update_task_subtask": ("task_subtasks", "subtask_id"),
    "delete_task_subtask": ("task_subtasks", "subtask_id"),
    "update_field": ("table_fields", "field_id"),
    "delete_field": ("table_fields", "field_id"),
    "update_row": ("table_rows", "row_id"),
    "update_cell": ("table_rows", "row_id"),
    "delete_row": ("table_rows", "row_id"),
    "update_table_full": ("tables", "table_id"),
    "delete_table": ("tables", "table_id"),
    "update_timeline_event": ("timeline_events", "event_id"),
    "delete_timeline_event": ("timeline_events", "event_id"),
    "delete_timeline_dependency": ("timeline_dependencies", "dependency_id"),
    "update_property_definition": ("property_definitions", "definition_id"),
    "delete_property_definition": ("property_definitions", "definition_id"),
    "update_client": ("clients", "client_id"),
    "delete_client": ("clients", "client_id"),
    "update_doc": ("docs", "doc_id"),
    "archive_doc": ("docs", "doc_id"),
    "delete_doc": ("docs", "doc_id"),
    "rename_file": ("files", "file_id"),
    "update_comment": ("table_comments", "comment_id"),
    "delete_comment": ("table_comments", "comment_id"),
}

# tool name -> (storage table, id-list argument)
BULK_ROW_TOOLS = {
    "bulk_update_task_items": ("task_items", "task_ids"),
    "bulk_move_task_items": ("task_items", "task_ids"),
    "delete_rows": ("table_rows", "row_ids"),
    "bulk_update_rows": ("table_rows", "row_ids"),
}

# create tool -> storage table whose new row is deleted on undo
CREATE_TOOLS = {
    "create_project": "projects",
    "create_tab": "tabs",
    "create_block": "blocks",
    "create_chart_block": "blocks",
    "create_task_item": "task_items",
    "create_task_subtask": "task_subtasks",
    "create_client": "clients",
    "create_doc": "docs",
    "create_task_comment": "task_comments",
    "create_comment": "table_comments",
    "create_timeline_event": "timeline_events",
    "create_timeline_dependency": "timeline_dependencies",
    "create_property_definition": "property_definitions",
    "create_row": "table_rows",
    "create_field": "table_fields",
}

ENTITY_PROPERTY_CONFLICT = "entity_type,entity_id,property_definition_id"


def is_write_tool(name: str) -> bool:
    return not (name.startswith(READ_TOOL_PREFIXES) or name in READ_TOOL_NAMES)


class UndoTracker:
    """Caller-owned undo journal; the engine only appends to it."""

    def __init__(self):
        self.batches: List[UndoBatch] = []
        self.skipped_tools: List[str] = []

    def add_batch(self, steps: List[UndoStep], tool_name: Optional[str] = None) -> None:
        self.batches.append(UndoBatch(tool_name=tool_name, steps=list(steps)))

    def skip_tool(self, name: str) -> None:
        self.skipped_tools.append(name)


def _string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value if item]
    if isinstance(value, str) and value:
        return [value]
    return []


async def _fetch(
    actions: DataActions,
    table: str,
    column: str,
    values: List[str],
    where: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    unique = list(dict.fromkeys(value for value in values if value))
    if not unique:
        return []
    result = await actions.fetch_rows(table, column, unique, where)
    if not result.ok:
        logger.warning(f"Undo pre-image read from {table} failed: {result.error}")
        return []
    return list(result.data or [])


def _restore_step(table: str, rows: List[Dict[str, Any]], on_conflict: str = "id") -> List[UndoStep]:
    if not rows:
        return []
    return [UndoStep(action="upsert", table=table, rows=rows, on_conflict=on_conflict)]


async def _rows_matching_filters(
    actions: DataActions,
    table_id: str,
    filters_list: List[Optional[Dict[str, Any]]],
    limit: int,
) -> List[Dict[str, Any]]:
    """Storage rows of ``table_id`` that the field-name filters select."""
    field_rows = await _fetch(actions, "table_fields", "table_id", [table_id])
    if not field_rows:
        return []
    fields = [TableField(**row) for row in field_rows]
    rows = sorted(await _fetch(actions, "table_rows", "table_id", [table_id]), key=lambda r: r.get("order") or 0)
    rows = rows[:limit]

    if any(not filters for filters in filters_list):
        return rows

    matched = set()
    for filters in filters_list:
        resolved, _ = build_row_filters(fields, filters)
        for row in rows:
            if matches_row_filters(row.get("data") or {}, resolved):
                matched.add(row.get("id"))
    return [row for row in rows if row.get("id") in matched]


async def _assignee_steps(actions: DataActions, task_ids: List[str], workspace_id: Optional[str]) -> List[UndoStep]:
    steps = [UndoStep(action="delete", table="task_assignees", ids=task_ids, id_column="task_id")]
    assignees = await _fetch(actions, "task_assignees", "task_id", task_ids)
    steps.extend(_restore_step("task_assignees", assignees, "task_id,assignee_id"))

    if not workspace_id:
        return steps
    definitions = await _fetch(
        actions, "property_definitions", "workspace_id", [workspace_id], {"name": "Assignee", "type": "person"}
    )
    if not definitions:
        return steps

    where = {"workspace_id": workspace_id, "entity_type": "task", "property_definition_id": definitions[0]["id"]}
    props = await _fetch(actions, "entity_properties", "entity_id", task_ids, where)
    steps.append(UndoStep(action="delete", table="entity_properties", ids=task_ids, id_column="entity_id", where=where))
    steps.extend(_restore_step("entity_properties", props, ENTITY_PROPERTY_CONFLICT))
    return steps


async def capture_undo_steps_before(
    actions: DataActions,
    tool_name: str,
    args: Dict[str, Any],
    workspace_id: Optional[str] = None,
    row_scan_limit: int = 500,
) -> List[UndoStep]:
    """Read pre-images for the rows ``tool_name`` is about to change."""
    if tool_name in SINGLE_ROW_TOOLS:
        table, id_arg = SINGLE_ROW_TOOLS[tool_name]
        return _restore_step(table, await _fetch(actions, table, "id", _string_list(args.get(id_arg))))

    if tool_name in BULK_ROW_TOOLS:
        table, ids_arg = BULK_ROW_TOOLS[tool_name]
        return _restore_step(table, await _fetch(actions, table, "id", _string_list(args.get(ids_arg))))

    if tool_name in ("update_table_rows_by_field_names", "bulk_update_rows_by_field_names"):
        table_id = args.get("table_id")
        if not table_id:
            return []
        limit = args.get("limit") if isinstance(args.get("limit"), int) else row_scan_limit
        if tool_name == "update_table_rows_by_field_names":
            filters_list = [args.get("filters")]
        else:
            entries = args.get("rows") if isinstance(args.get("rows"), list) else []
            filters_list = [entry.get("filters") for entry in entries if isinstance(entry, dict)] or [None]
        rows = await _rows_matching_filters(actions, table_id, filters_list, limit)
        return _restore_step("table_rows", rows)

    if tool_name in ("set_task_assignees", "bulk_set_task_assignees"):
        task_ids = _string_list(args.get("task_ids") if tool_name == "bulk_set_task_assignees" else args.get("task_id"))
        if not task_ids:
            return []
        return await _assignee_steps(actions, task_ids, workspace_id)

    if tool_name == "set_task_tags":
        task_id = args.get("task_id")
        if not task_id:
            return []
        links = await _fetch(actions, "task_tag_links", "task_id", [task_id])
        steps = [UndoStep(action="delete", table="task_tag_links", where={"task_id": task_id})]
        return steps + _restore_step("task_tag_links", links, "task_id,tag_id")

    if tool_name in ("set_entity_property", "remove_entity_property"):
        entity_type = args.get("entity_type")
        entity_id = args.get("entity_id")
        definition_id = args.get("property_definition_id")
        if not (entity_type and entity_id and definition_id and workspace_id):
            return []
        where = {"workspace_id": workspace_id, "entity_type": entity_type, "property_definition_id": definition_id}
        rows = await _fetch(actions, "entity_properties", "entity_id", [entity_id], where)
        if rows:
            return _restore_step("entity_properties", rows, ENTITY_PROPERTY_CONFLICT)
        return [UndoStep(action="delete", table="entity_properties", where={**where, "entity_id": entity_id})]

    return []


def _delete_ids(table: str, ids: List[Any]) -> List[UndoStep]:
    ids = [str(value) for value in ids if isinstance(value, str) and value]
    if not ids:
        return []
    return [UndoStep(action="delete", table=table, ids=ids)]


def _get(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


_AFTER_BUILDERS: Dict[str, Callable[[Any], List[UndoStep]]] = {
    "bulk_create_fields": lambda data: _delete_ids(
        "table_fields", [_get(row, "id") for row in data] if isinstance(data, list) else []
    ),
    "bulk_insert_rows": lambda data: _delete_ids("table_rows", _get(data, "inserted_ids") or []),
    "duplicate_tasks_to_block": lambda data: _delete_ids("task_items", _get(data, "created_task_ids") or []),
    "bulk_create_tasks": lambda data: _delete_ids("task_items", _get(data, "created_task_ids") or []),
    "create_task_board_from_tasks": lambda data: (
        _delete_ids("task_items", _get(data, "created_task_ids") or [])
        + _delete_ids("blocks", [_get(data, "task_block_id")])
    ),
    "create_table": lambda data: (
        _delete_ids("blocks", [_get(data, "block", "id")]) + _delete_ids("tables", [_get(data, "table", "id")])
    ),
    "create_table_full": lambda data: (
        _delete_ids("blocks", [_get(data, "block_id")]) + _delete_ids("tables", [_get(data, "table_id")])
    ),
}


def build_undo_steps_after(tool_name: str, result: ToolResult) -> List[UndoStep]:
    """Delete steps for whatever a successful create-type tool produced."""
    if not result.success:
        return []
    if tool_name in CREATE_TOOLS:
        return _delete_ids(CREATE_TOOLS[tool_name], [_get(result.data, "id")])
    builder = _AFTER_BUILDERS.get(tool_name)
    return builder(result.data) if builder else []


def record_undo(tracker: UndoTracker, tool_name: str, pre_steps: List[UndoStep], result: ToolResult) -> None:
    """Queue a batch for a successful tool, or mark it as skipped when nothing is reversible."""
    if not result.success:
        return
    steps = build_undo_steps_after(tool_name, result) + pre_steps
    if steps:
        tracker.add_batch(steps, tool_name)
    else:
        tracker.skip_tool(tool_name)


async def _apply_step(actions: DataActions, step: UndoStep) -> Optional[str]:
    if step.table not in ALLOWED_UNDO_TABLES:
        return f'Undo not allowed for table "{step.table}"'

    if step.action == "delete":
        if not step.ids and not step.where:
            return "Undo delete step missing ids/where"
        result = await actions.delete_rows(step.table, ids=step.ids or None, id_column=step.id_column, where=step.where)
        return None if result.ok else (result.error or "Failed to delete rows")

    if not step.rows:
        return None
    result = await actions.upsert_rows(step.table, step.rows, step.on_conflict or step.id_column)
    return None if result.ok else (result.error or "Failed to upsert rows")


async def apply_undo_batches(actions: DataActions, batches: List[UndoBatch]) -> UndoApplyResult:
    """Undo tool calls newest first, keeping step order inside each batch."""
    outcome = UndoApplyResult()
    for batch in reversed([batch for batch in batches if batch.steps]):
        for step in batch.steps:
            error = await _apply_step(actions, step)
            if error:
                logger.warning(f"Undo step on {step.table} failed: {error}")
                outcome.failed += 1
                outcome.errors.append(error)
            else:
                outcome.applied += 1
    return outcome
