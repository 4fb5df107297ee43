"""Tool catalog for the workspace assistant.

Declares every operation the assistant can call: name, description,
category and a JSON schema of its parameters. Tools are grouped by the
entity they act on; the ``core`` group (read-only search and resolution
tools) is always offered.

Tool Categories:
- Control (1): request_tool_groups
- Search (19): cross-entity and per-entity read tools, table schema
- Task (15), Project (3), Tab (3), Block (4), Table (17), Timeline (5)
- Property (5), Client (3), Doc (4), File (2), Comment (3), Workspace (1)
"""

from typing import Any, Dict, Iterable, List, Optional

from llm.models import ToolDefinition

TOOL_GROUPS = (
    "core",
    "task",
    "project",
    "table",
    "timeline",
    "block",
    "tab",
    "doc",
    "file",
    "client",
    "property",
    "comment",
    "workspace",
)

TASK_STATUSES = ["todo", "in-progress", "blocked", "done"]
TASK_PRIORITIES = ["low", "medium", "high", "urgent"]
PROJECT_STATUSES = ["not_started", "in_progress", "complete"]
EVENT_STATUSES = ["not_started", "in_progress", "complete", "on_hold", "cancelled"]
FIELD_TYPES = [
    "text", "long_text", "number", "select", "multi_select", "date", "checkbox", "url", "email",
    "phone", "person", "files", "created_time", "last_edited_time", "created_by", "last_edited_by",
    "formula", "relation", "rollup", "status", "priority",
]
BLOCK_TYPES = [
    "text", "task", "table", "timeline", "image", "file", "video", "embed", "gallery", "section",
    "link", "pdf", "chart", "doc_reference",
]
ENTITY_TYPES = [
    "task", "project", "client", "member", "tab", "block", "doc", "table", "table_row",
    "timeline_event", "file", "tag",
]


def _s(description: str, enum: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "string", "description": description}
    if enum:
        schema["enum"] = enum
    return schema


def _n(description: str) -> Dict[str, Any]:
    return {"type": "number", "description": description}


def _b(description: str) -> Dict[str, Any]:
    return {"type": "boolean", "description": description}


def _o(description: str) -> Dict[str, Any]:
    return {"type": "object", "description": description}


def _a(description: str, item_type: str = "string") -> Dict[str, Any]:
    return {"type": "array", "description": description, "items": {"type": item_type}}


def _define(
    name: str,
    category: str,
    description: str,
    properties: Optional[Dict[str, Any]] = None,
    required: Iterable[str] = (),
    is_destructive: bool = False,
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description,
        category=category,
        parameters={"type": "object", "properties": properties or {}, "required": list(required)},
        is_destructive=is_destructive,
    )


DATE_RANGE = {
    "type": "object",
    "description": "Date filter: eq (exact), gte (on or after), lte (on or before), is_null",
    "properties": {
        "eq": _s("Exact date (YYYY-MM-DD)"),
        "gte": _s("On or after date (YYYY-MM-DD)"),
        "lte": _s("On or before date (YYYY-MM-DD)"),
        "is_null": _b("True to match entities without a date"),
    },
}

ASSIGNEES = _a(
    "Assignee NAMES (e.g. ['Amna', 'John']) or member ids. Names are resolved on the server; "
    "a name matching several members fails the call with the candidates listed."
)


# =============================================================================
# CONTROL + SEARCH
# =============================================================================

_CONTROL_TOOLS = [
    _define(
        "request_tool_groups", "control",
        "Request additional tool groups when a needed capability is missing. "
        "Returns the requested groups so the caller can expand access and continue.",
        {
            "tool_groups": _a("Tool groups needed: " + ", ".join(TOOL_GROUPS[1:])),
            "reason": _s("Short reason why these tools are needed"),
        },
        ["tool_groups"],
    ),
]

_SEARCH_TOOLS = [
    _define(
        "unstructured_search_workspace", "search",
        "Semantic search across blocks, docs and files. Use when keyword or structured filters are not enough.",
        {
            "query": _s("The semantic query"),
            "limit_parents": _n("Maximum number of sources (default 10)"),
            "limit_chunks": _n("Maximum chunks per source (default 5)"),
        },
        ["query"],
    ),
    _define(
        "search_tasks", "search",
        "Find task items by title, status, priority, assignee, tag, due date or project. Read-only.",
        {
            "search_text": _s("Matches the task title"),
            "status": _s("Filter by status", TASK_STATUSES),
            "priority": _s("Filter by priority", TASK_PRIORITIES),
            "assignee_id": _s("Filter by assignee user id"),
            "assignee_name": _s("Filter by assignee name (partial match)"),
            "tag_id": _s("Filter by tag id"),
            "tag_name": _s("Filter by tag name (partial match)"),
            "project_id": _s("Filter by project id"),
            "tab_id": _s("Filter by tab id"),
            "due_date": DATE_RANGE,
            "limit": _n("Maximum number of results (default 50)"),
        },
    ),
    _define(
        "search_projects", "search",
        "Find projects by name, status, client or type. Read-only.",
        {
            "search_text": _s("Matches the project name"),
            "status": _s("Filter by status", PROJECT_STATUSES),
            "project_type": _s("Filter by type", ["project", "internal"]),
            "client_id": _s("Filter by client id"),
            "due_date": DATE_RANGE,
            "limit": _n("Maximum number of results (default 50)"),
        },
    ),
    _define(
        "search_tabs", "search",
        "Find tabs by name or project. Read-only.",
        {
            "search_text": _s("Matches the tab name"),
            "project_id": _s("Filter by project id"),
            "is_client_visible": _b("Filter by client visibility"),
            "limit": _n("Maximum number of results (default 50)"),
        },
    ),
    _define(
        "search_clients", "search",
        "Find clients by name, email or company. Read-only.",
        {
            "search_text": _s("Matches name, email or company"),
            "email": _s("Filter by email"),
            "company": _s("Filter by company"),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_workspace_members", "search",
        "List workspace members. Not needed for assignment: task and event tools resolve names themselves.",
        {
            "search_text": _s("Matches member name or email"),
            "role": _s("Filter by role", ["owner", "admin", "teammate"]),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_tables", "search",
        "Find tables by title or project. Prefers the table in focus, then the tables shown in the current tab.",
        {
            "search_text": _s("Matches the table title"),
            "project_id": _s("Filter by project id"),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_table_rows", "search",
        "Find rows within a table. Returns row ids and cell data.",
        {
            "table_id": _s("The table id"),
            "search_text": _s("Text to find in any field"),
            "field_filters": _o("Filters keyed by field id"),
            "limit": _n("Maximum number of results"),
        },
        ["table_id"],
    ),
    _define(
        "search_timeline_events", "search",
        "Find timeline events by title, dates, status, assignee or milestone flag. Read-only.",
        {
            "search_text": _s("Matches the event title"),
            "project_id": _s("Filter by project id"),
            "project_name": _s("Filter by project name (partial match)"),
            "assignee_id": _s("Filter by assignee id"),
            "assignee_name": _s("Filter by assignee name"),
            "status": _s("Filter by status"),
            "is_milestone": _b("Milestones only"),
            "start_date": DATE_RANGE,
            "end_date": DATE_RANGE,
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_blocks", "search",
        "Find content blocks by type, project or tab. Read-only.",
        {
            "search_text": _s("Matches block content"),
            "type": _s("Filter by block type", BLOCK_TYPES),
            "project_id": _s("Filter by project id"),
            "project_name": _s("Filter by project name (partial match)"),
            "tab_id": _s("Filter by tab id"),
            "is_template": _b("Template blocks only"),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_docs", "search",
        "Find documents by title or content. Read-only.",
        {
            "search_text": _s("Matches the document title"),
            "content_search": _s("Text to find within document content"),
            "search_both": _b("Search title and content with search_text"),
            "is_archived": _b("Include archived docs"),
            "created_by": _s("Filter by creator user id"),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_doc_content", "search",
        "Find text within one document. Returns matching snippets.",
        {
            "doc_id": _s("The document id"),
            "search_text": _s("Text to search for"),
            "snippet_length": _n("Snippet length (default 100)"),
        },
        ["doc_id", "search_text"],
    ),
    _define(
        "search_files", "search",
        "Find uploaded files by name, type or project. Read-only.",
        {
            "search_text": _s("Matches the file name"),
            "file_type": _s("Filter by MIME type"),
            "project_id": _s("Filter by project id"),
            "limit": _n("Maximum number of results"),
        },
    ),
    _define(
        "search_tags", "search",
        "Find task tags by name. Read-only.",
        {"search_text": _s("Matches the tag name"), "limit": _n("Maximum number of results")},
    ),
    _define(
        "search_all", "search",
        "Search every entity type at once. Results are grouped by entity type.",
        {
            "search_text": _s("Search text"),
            "project_id": _s("Limit results to one project"),
            "entity_types": _a("Entity types to search"),
            "include_content": _b("Search content as well (default false)"),
            "limit": _n("Maximum results per entity type (default 10)"),
            "offset": _n("Pagination offset (default 0)"),
        },
        ["search_text"],
    ),
    _define(
        "resolve_entity_by_name", "search",
        "Turn an entity name into matching ids. Read-only.",
        {
            "entity_type": _s("Type of entity", ENTITY_TYPES),
            "name": _s("Name to search for"),
            "project_id": _s("Limit to one project"),
            "limit": _n("Maximum number of results (default 5)"),
        },
        ["entity_type", "name"],
    ),
    _define(
        "get_entity_by_id", "search",
        "Get the full record of an entity by id. Read-only.",
        {"entity_type": _s("Type of entity", ENTITY_TYPES), "id": _s("The entity id")},
        ["entity_type", "id"],
    ),
    _define(
        "get_entity_context", "search",
        "Get an entity with its related data (assignees, tags, parent block or table). Read-only.",
        {
            "entity_type": _s("Type of entity", ["block", "task", "timeline_event", "table_row"]),
            "id": _s("The entity id"),
        },
        ["entity_type", "id"],
    ),
    _define(
        "get_table_schema", "search",
        "Get the fields of a table with their types and configuration. "
        "Not needed before update_table_rows_by_field_names or bulk_insert_rows; they resolve names.",
        {"table_id": _s("The table id")},
        ["table_id"],
    ),
]

# =============================================================================
# TASKS
# =============================================================================

_TASK_FIELDS = {
    "title": _s("Task title"),
    "assignees": ASSIGNEES,
    "tags": _a("Tag names"),
    "status": _s("Task status", TASK_STATUSES),
    "priority": _s("Task priority", TASK_PRIORITIES),
    "description": _s("Task description"),
    "due_date": _s("Due date (YYYY-MM-DD)"),
    "due_time": _s("Due time (HH:MM)"),
    "start_date": _s("Start date (YYYY-MM-DD)"),
}

_TASK_TOOLS = [
    _define(
        "create_task_item", "task",
        "Create a task. The task block defaults to the current tab's task board, created if missing. "
        "Pass assignee names directly; they are resolved on the server.",
        {
            "task_block_id": _s("Task block id; only to override the current context"),
            "task_block_name": _s("Task block name (e.g. 'Sprint Board'); only to override the current context"),
            **_TASK_FIELDS,
        },
        ["title"],
    ),
    _define(
        "update_task_item", "task",
        "Update a task by id, or find it by title with lookup_name. "
        "assignees and tags replace the current values; an empty list clears them.",
        {
            "task_id": _s("The task id (optional when lookup_name is given)"),
            "lookup_name": _s("Find the task by title"),
            **_TASK_FIELDS,
        },
    ),
    _define(
        "bulk_update_task_items", "task",
        "Apply the same updates to several tasks.",
        {
            "task_ids": _a("Task ids"),
            "updates": _o("Fields to update: status, priority, description, due_date, due_time, start_date"),
        },
        ["task_ids", "updates"],
    ),
    _define(
        "bulk_move_task_items", "task",
        "Move tasks to another task block.",
        {"task_ids": _a("Task ids"), "target_block_id": _s("Destination task block id")},
        ["task_ids", "target_block_id"],
    ),
    _define(
        "duplicate_tasks_to_block", "task",
        "Copy tasks into another task block, keeping the originals.",
        {
            "task_ids": _a("Task ids"),
            "target_block_id": _s("Destination task block id"),
            "include_assignees": _b("Copy assignees (default true)"),
            "include_tags": _b("Copy tags (default true)"),
        },
        ["task_ids", "target_block_id"],
    ),
    _define(
        "create_task_board_from_tasks", "task",
        "Create a new task board in a tab and copy tasks into it. Source tasks can be listed by id "
        "or selected by assignee.",
        {
            "tab_id": _s("Tab for the new board (defaults to the current tab)"),
            "title": _s("Board title"),
            "task_ids": _a("Task ids to copy"),
            "assignee_id": _s("Include every task assigned to this user id"),
            "assignee_name": _s("Include every task assigned to this name"),
            "source_project_id": _s("Project scope for source tasks"),
            "source_tab_id": _s("Tab scope for source tasks"),
            "limit": _n("Maximum tasks selected by assignee (default 500)"),
            "view_mode": _s("Board view mode (default board)", ["board", "list"]),
            "board_group_by": _s("Board grouping (default status)", ["status", "priority", "assignee"]),
            "include_assignees": _b("Copy assignees (default true)"),
            "include_tags": _b("Copy tags (default true)"),
        },
    ),
    _define(
        "delete_task_item", "task", "Delete a task.",
        {"task_id": _s("The task id")}, ["task_id"], is_destructive=True,
    ),
    _define(
        "bulk_create_tasks", "task",
        "Create several tasks in one call, all in the same task block.",
        {
            "task_block_id": _s("Task block id; only to override the current context"),
            "task_block_name": _s("Task block name; only to override the current context"),
            "tasks": {"type": "array", "description": "Tasks, each with the create_task_item fields", "items": {"type": "object"}},
        },
        ["tasks"],
    ),
    _define(
        "set_task_assignees", "task",
        "Replace the assignees of a task.",
        {"task_id": _s("The task id"), "assignees": ASSIGNEES},
        ["task_id", "assignees"],
    ),
    _define(
        "bulk_set_task_assignees", "task",
        "Replace the assignees of several tasks.",
        {"task_ids": _a("Task ids"), "assignees": ASSIGNEES},
        ["task_ids", "assignees"],
    ),
    _define(
        "set_task_tags", "task",
        "Replace the tags of a task. Unknown tag names are created.",
        {"task_id": _s("The task id"), "tag_names": _a("Tag names")},
        ["task_id", "tag_names"],
    ),
    _define(
        "create_task_subtask", "task", "Add a subtask to a task.",
        {"task_id": _s("The parent task id"), "title": _s("Subtask title"), "completed": _b("Completed flag")},
        ["task_id", "title"],
    ),
    _define(
        "update_task_subtask", "task", "Update a subtask.",
        {"subtask_id": _s("The subtask id"), "title": _s("New title"), "completed": _b("Completed flag")},
        ["subtask_id"],
    ),
    _define(
        "delete_task_subtask", "task", "Delete a subtask.",
        {"subtask_id": _s("The subtask id")}, ["subtask_id"], is_destructive=True,
    ),
    _define(
        "create_task_comment", "task", "Comment on a task.",
        {"task_id": _s("The task id"), "text": _s("Comment text")},
        ["task_id", "text"],
    ),
]

# =============================================================================
# PROJECTS, TABS, BLOCKS
# =============================================================================

_PROJECT_TOOLS = [
    _define(
        "create_project", "project",
        "Create a project. client_name is resolved to a client id.",
        {
            "name": _s("Project name"),
            "client_id": _s("Client id"),
            "client_name": _s("Client name (e.g. 'Acme Corp')"),
            "status": _s("Project status", PROJECT_STATUSES),
            "due_date": _s("Due date (YYYY-MM-DD)"),
            "project_type": _s("Project type", ["project", "internal"]),
        },
        ["name"],
    ),
    _define(
        "update_project", "project",
        "Update a project. client_name null or empty removes the client.",
        {
            "project_id": _s("The project id"),
            "name": _s("New name"),
            "status": _s("New status", PROJECT_STATUSES),
            "client_id": _s("New client id (null to remove)"),
            "client_name": _s("New client name (null to remove)"),
            "due_date": _s("New due date (YYYY-MM-DD, or null to clear)"),
            "project_type": _s("New project type", ["project", "internal"]),
        },
        ["project_id"],
    ),
    _define(
        "delete_project", "project", "Delete a project and everything in it.",
        {"project_id": _s("The project id")}, ["project_id"], is_destructive=True,
    ),
]

_TAB_TOOLS = [
    _define(
        "create_tab", "tab",
        "Create a tab in a project (defaults to the current project).",
        {"project_id": _s("The project id"), "name": _s("Tab name"), "parent_tab_id": _s("Parent tab id for nesting")},
        ["name"],
    ),
    _define(
        "update_tab", "tab", "Rename or re-parent a tab.",
        {"tab_id": _s("The tab id"), "name": _s("New name"), "parent_tab_id": _s("New parent tab id (null for top level)")},
        ["tab_id"],
    ),
    _define(
        "delete_tab", "tab", "Delete a tab.",
        {"tab_id": _s("The tab id")}, ["tab_id"], is_destructive=True,
    ),
]

_BLOCK_TOOLS = [
    _define(
        "create_chart_block", "block",
        "Create a chart block from a request. Simulations default to the chart in focus.",
        {
            "tab_id": _s("Tab for the chart"),
            "tab_name": _s("Tab name (e.g. 'Overview')"),
            "prompt": _s("The chart request including any inline data"),
            "chart_type": _s("Chart type hint", ["bar", "line", "pie", "doughnut"]),
            "title": _s("Chart title"),
            "explicit_data": _o("Structured data to chart"),
            "is_simulation": _b("What-if simulation (creates a new chart)"),
            "original_chart_id": _s("Original chart block id for simulations"),
            "simulation_description": _s("Short description of the what-if change"),
        },
        ["prompt"],
    ),
    _define(
        "create_block", "block",
        "Create a content block in a tab (defaults to the current tab).",
        {
            "tab_id": _s("Tab id"),
            "tab_name": _s("Tab name (e.g. 'Overview')"),
            "type": _s("Block type", BLOCK_TYPES),
            "content": _o("Block content (varies by type)"),
            "position": _n("Row position (0-based)"),
            "column": _n("Column (0, 1 or 2)"),
            "parent_block_id": _s("Parent section block id"),
        },
        ["type"],
    ),
    _define(
        "update_block", "block", "Update a block's content or placement.",
        {
            "block_id": _s("The block id"),
            "content": _o("New content"),
            "position": _n("New row position"),
            "column": _n("New column"),
        },
        ["block_id"],
    ),
    _define(
        "delete_block", "block", "Delete a block.",
        {"block_id": _s("The block id")}, ["block_id"], is_destructive=True,
    ),
]

# =============================================================================
# TABLES
# =============================================================================

_FIELD_SPEC = {"type": "array", "description": "Fields, each { name, type, config?, is_primary? }", "items": {"type": "object"}}
_ROWS_SPEC = {"type": "array", "description": "Rows as [{ data: { FieldName: value } }]", "items": {"type": "object"}}

_TABLE_TOOLS = [
    _define(
        "create_table", "table",
        "Create an empty table. With a tab, a table block is added so it is visible; "
        "prefer create_table_full.",
        {
            "workspace_id": _s("Workspace id (defaults to the current workspace)"),
            "title": _s("Table title"),
            "description": _s("Table description"),
            "project_id": _s("Project id"),
            "tab_id": _s("Tab id for the table block"),
        },
        ["title"],
    ),
    _define(
        "create_field", "table",
        "Add a column to a table. On a brand-new table a placeholder column is renamed instead. "
        "Priority and status fields get default options when config is omitted.",
        {
            "table_id": _s("The table id"),
            "name": _s("Field name"),
            "type": _s("Field type", FIELD_TYPES),
            "config": _o("Field configuration (levels for priority, options for status/select)"),
            "is_primary": _b("Primary field"),
        },
        ["table_id", "name", "type"],
    ),
    _define(
        "bulk_create_fields", "table",
        "Add several columns in one call. Existing names are reused; placeholder columns of a new table are renamed.",
        {"table_id": _s("The table id"), "fields": _FIELD_SPEC},
        ["table_id", "fields"],
    ),
    _define(
        "update_field", "table", "Rename or reconfigure a column.",
        {"field_id": _s("The field id"), "name": _s("New name"), "config": _o("New configuration")},
        ["field_id"],
    ),
    _define(
        "delete_field", "table", "Delete a column.",
        {"field_id": _s("The field id")}, ["field_id"], is_destructive=True,
    ),
    _define(
        "create_row", "table",
        "Add one row. Data may be keyed by field name or id; select labels are mapped to options.",
        {
            "table_id": _s("The table id"),
            "table_name": _s("Table name (e.g. 'Employees')"),
            "data": _o("Row data as { field: value }"),
        },
    ),
    _define(
        "update_row", "table", "Replace cell values of one row by field id.",
        {"row_id": _s("The row id"), "data": _o("Cell values keyed by field id")},
        ["row_id"],
    ),
    _define(
        "update_cell", "table",
        "Set one cell. Requires row and field UUIDs; use update_table_rows_by_field_names with names.",
        {"row_id": _s("The row id (UUID)"), "field_id": _s("The field id (UUID)"), "value": _s("New value")},
        ["row_id", "field_id", "value"],
    ),
    _define(
        "delete_row", "table", "Delete a row.",
        {"row_id": _s("The row id")}, ["row_id"], is_destructive=True,
    ),
    _define(
        "delete_rows", "table", "Delete several rows.",
        {"row_ids": _a("Row ids")}, ["row_ids"], is_destructive=True,
    ),
    _define(
        "bulk_insert_rows", "table",
        "Insert rows keyed by field name. Unknown names are reported as warnings; "
        "re-sending rows that already exist inserts nothing.",
        {"table_id": _s("The table id"), "table_name": _s("Table name (e.g. 'Q1 Goals')"), "rows": _ROWS_SPEC},
        ["rows"],
    ),
    _define(
        "bulk_update_rows", "table",
        "Apply the same updates to rows by id. Keys must be field UUIDs and select values option ids.",
        {"table_id": _s("The table id"), "row_ids": _a("Row ids (UUIDs)"), "updates": _o("Updates keyed by field id")},
        ["table_id", "row_ids", "updates"],
    ),
    _define(
        "update_table_rows_by_field_names", "table",
        "Update rows matched by field-name filters, using field names and option labels. "
        "Filters take a value, a list of values, or { op: eq|gte|lte|contains, value }. "
        "Numbers like '10k' or '$1,200' are understood. Omit filters to update every row.",
        {
            "table_id": _s("The table id"),
            "filters": _o("Row filters as { FieldName: value }"),
            "updates": _o("Updates as { FieldName: value }; labels become option ids"),
            "limit": _n("Maximum rows scanned (default 500)"),
        },
        ["table_id", "updates"],
    ),
    _define(
        "bulk_update_rows_by_field_names", "table",
        "Several filter/update pairs in one call, for different values per row.",
        {
            "table_id": _s("The table id"),
            "rows": {"type": "array", "description": "Entries { filters?, updates }", "items": {"type": "object"}},
            "limit": _n("Maximum rows scanned (default 500)"),
        },
        ["table_id", "rows"],
    ),
    _define(
        "create_table_full", "table",
        "Create a table with columns and rows in one call. Column types and options are inferred "
        "from the rows when not given. Preferred for every table creation.",
        {
            "workspace_id": _s("Workspace id (defaults to the current workspace)"),
            "title": _s("Table title"),
            "description": _s("Table description"),
            "project_id": _s("Project id"),
            "tab_id": _s("Tab id; a table block is added to it"),
            "fields": _FIELD_SPEC,
            "rows": _ROWS_SPEC,
        },
        ["title"],
    ),
    _define(
        "update_table_full", "table",
        "Change a table's schema and rows in one call: add, update or delete fields; "
        "insert, update or delete rows.",
        {
            "table_id": _s("The table id"),
            "table_name": _s("Table name"),
            "title": _s("New table title"),
            "description": _s("New table description"),
            "add_fields": _FIELD_SPEC,
            "update_fields": {"type": "array", "description": "Entries { field_id or field_name, name?, config? }", "items": {"type": "object"}},
            "delete_fields": _a("Field ids or names to delete"),
            "insert_rows": _ROWS_SPEC,
            "update_rows": _o("{ filters, updates } by field name"),
            "delete_row_ids": _a("Row ids to delete"),
        },
    ),
    _define(
        "delete_table", "table", "Delete a table permanently.",
        {"table_id": _s("The table id"), "table_name": _s("Table name")},
        is_destructive=True,
    ),
]

# =============================================================================
# TIMELINE, PROPERTIES, CLIENTS, DOCS, FILES, COMMENTS, WORKSPACE
# =============================================================================

_EVENT_FIELDS = {
    "status": _s("Event status", EVENT_STATUSES),
    "progress": _n("Progress percentage (0-100)"),
    "notes": _s("Event notes"),
    "color": _s("Event color (hex)"),
    "is_milestone": _b("Milestone flag"),
    "assignee_id": _s("Assignee user id"),
    "assignee_name": _s("Assignee name; resolved to a member"),
}

_TIMELINE_TOOLS = [
    _define(
        "create_timeline_event", "timeline",
        "Create a timeline event. The timeline block defaults to the current tab's, created if missing.",
        {
            "timeline_block_id": _s("Timeline block id"),
            "timeline_block_name": _s("Timeline block name (e.g. 'Project Timeline')"),
            "title": _s("Event title"),
            "start_date": _s("Start date (YYYY-MM-DD)"),
            "end_date": _s("End date (YYYY-MM-DD)"),
            **_EVENT_FIELDS,
        },
        ["title", "start_date", "end_date"],
    ),
    _define(
        "update_timeline_event", "timeline", "Update a timeline event.",
        {
            "event_id": _s("The event id"),
            "title": _s("New title"),
            "start_date": _s("New start date"),
            "end_date": _s("New end date"),
            **_EVENT_FIELDS,
        },
        ["event_id"],
    ),
    _define(
        "delete_timeline_event", "timeline", "Delete a timeline event.",
        {"event_id": _s("The event id")}, ["event_id"], is_destructive=True,
    ),
    _define(
        "create_timeline_dependency", "timeline",
        "Link two events; finish-to-start means the target starts after the source finishes.",
        {
            "timeline_block_id": _s("Timeline block owning the events"),
            "from_event_id": _s("Source event id"),
            "to_event_id": _s("Target event id"),
            "dependency_type": _s(
                "Dependency type", ["finish-to-start", "start-to-start", "finish-to-finish", "start-to-finish"]
            ),
        },
        ["timeline_block_id", "from_event_id", "to_event_id"],
    ),
    _define(
        "delete_timeline_dependency", "timeline", "Delete a timeline dependency.",
        {"dependency_id": _s("The dependency id")}, ["dependency_id"], is_destructive=True,
    ),
]

_PROPERTY_TOOLS = [
    _define(
        "create_property_definition", "property",
        "Create a workspace property usable on tasks, blocks, events and rows.",
        {
            "name": _s("Property name"),
            "type": _s("Property type", ["text", "number", "date", "select", "multi_select", "person", "checkbox", "url", "email"]),
            "options": {"type": "array", "description": "Options { id, label, color? } for select types", "items": {"type": "object"}},
        },
        ["name", "type"],
    ),
    _define(
        "update_property_definition", "property", "Rename a property or change its options.",
        {
            "definition_id": _s("The property definition id"),
            "name": _s("New name"),
            "options": {"type": "array", "description": "New options", "items": {"type": "object"}},
        },
        ["definition_id"],
    ),
    _define(
        "delete_property_definition", "property", "Delete a property from every entity.",
        {"definition_id": _s("The property definition id")}, ["definition_id"], is_destructive=True,
    ),
    _define(
        "set_entity_property", "property", "Set a property value on an entity.",
        {
            "entity_type": _s("Entity type", ["task", "block", "timeline_event", "table_row"]),
            "entity_id": _s("The entity id"),
            "property_definition_id": _s("The property definition id"),
            "value": _o("The value (shape depends on property type)"),
        },
        ["entity_type", "entity_id", "property_definition_id", "value"],
    ),
    _define(
        "remove_entity_property", "property", "Remove a property value from an entity.",
        {
            "entity_type": _s("Entity type"),
            "entity_id": _s("The entity id"),
            "property_definition_id": _s("The property definition id"),
        },
        ["entity_type", "entity_id", "property_definition_id"],
    ),
]

_CLIENT_FIELDS = {
    "name": _s("Client name"),
    "email": _s("Email"),
    "company": _s("Company"),
    "phone": _s("Phone"),
    "address": _s("Address"),
    "website": _s("Website URL"),
    "notes": _s("Notes"),
}

_CLIENT_TOOLS = [
    _define("create_client", "client", "Create a client.", dict(_CLIENT_FIELDS), ["name"]),
    _define(
        "update_client", "client", "Update a client.",
        {"client_id": _s("The client id"), **_CLIENT_FIELDS}, ["client_id"],
    ),
    _define(
        "delete_client", "client", "Delete a client.",
        {"client_id": _s("The client id")}, ["client_id"], is_destructive=True,
    ),
]

_DOC_TOOLS = [
    _define("create_doc", "doc", "Create a document.", {"title": _s("Document title")}, ["title"]),
    _define(
        "update_doc", "doc", "Update a document's title or content.",
        {"doc_id": _s("The document id"), "title": _s("New title"), "content": _o("New content")},
        ["doc_id"],
    ),
    _define("archive_doc", "doc", "Archive a document.", {"doc_id": _s("The document id")}, ["doc_id"]),
    _define(
        "delete_doc", "doc", "Permanently delete a document.",
        {"doc_id": _s("The document id")}, ["doc_id"], is_destructive=True,
    ),
]

_FILE_TOOLS = [
    _define(
        "file_analysis_query", "file",
        "Answer a question from one or more files' extracted text and tables.",
        {
            "file_ids": _a("File ids"),
            "query": _s("The question"),
            "include_tables": _b("Include extracted table previews (default true)"),
            "max_text_chars": _n("Maximum extracted text per file (default 8000)"),
            "max_table_rows": _n("Maximum rows per extracted table (default 50)"),
        },
        ["file_ids", "query"],
    ),
    _define(
        "rename_file", "file", "Rename a file's display name.",
        {"file_id": _s("The file id"), "file_name": _s("New file name")},
        ["file_id", "file_name"],
    ),
]

_COMMENT_TOOLS = [
    _define(
        "create_comment", "comment", "Comment on a table row.",
        {"row_id": _s("The row id"), "text": _s("Comment text")}, ["row_id", "text"],
    ),
    _define(
        "update_comment", "comment", "Edit a row comment.",
        {"comment_id": _s("The comment id"), "text": _s("New text")}, ["comment_id", "text"],
    ),
    _define(
        "delete_comment", "comment", "Delete a row comment.",
        {"comment_id": _s("The comment id")}, ["comment_id"], is_destructive=True,
    ),
]

_WORKSPACE_TOOLS = [
    _define(
        "reindex_workspace_content", "workspace",
        "Re-index blocks, files and docs for semantic search. Returns counts of queued items.",
        {
            "workspace_id": _s("Workspace id (defaults to the current workspace)"),
            "include_blocks": _b("Include blocks (default true)"),
            "include_files": _b("Include files (default true)"),
            "include_docs": _b("Include docs (default true)"),
            "max_items": _n("Cap on queued items"),
        },
    ),
]

# =============================================================================
# REGISTRY
# =============================================================================

TOOL_CATALOG: Dict[str, ToolDefinition] = {
    tool.name: tool
    for tool in (
        _CONTROL_TOOLS + _SEARCH_TOOLS + _WORKSPACE_TOOLS + _TASK_TOOLS + _PROJECT_TOOLS + _TAB_TOOLS
        + _BLOCK_TOOLS + _TABLE_TOOLS + _TIMELINE_TOOLS + _PROPERTY_TOOLS + _CLIENT_TOOLS + _DOC_TOOLS
        + _FILE_TOOLS + _COMMENT_TOOLS
    )
}

CORE_TOOL_NAMES = (
    "search_all",
    "unstructured_search_workspace",
    "resolve_entity_by_name",
    "get_entity_by_id",
    "get_entity_context",
    "request_tool_groups",
    "search_tasks",
    "search_projects",
    "search_tabs",
    "search_workspace_members",
    "search_clients",
    "search_tables",
    "search_blocks",
    "search_docs",
    "search_files",
    "search_timeline_events",
    "search_table_rows",
    "search_tags",
    "get_table_schema",
    "reindex_workspace_content",
)


def get_tool(name: str) -> Optional[ToolDefinition]:
    return TOOL_CATALOG.get(name)


def get_tool_names() -> List[str]:
    return list(TOOL_CATALOG.keys())


def get_tools_by_groups(groups: Optional[Iterable[str]] = None) -> List[ToolDefinition]:
    """Core tools plus every tool whose category is one of ``groups``.

    Unknown group names are ignored.
    """
    selected = [TOOL_CATALOG[name] for name in CORE_TOOL_NAMES]
    seen = set(CORE_TOOL_NAMES)
    wanted = {group for group in (groups or []) if group in TOOL_GROUPS and group != "core"}
    for tool in TOOL_CATALOG.values():
        if tool.category in wanted and tool.name not in seen:
            selected.append(tool)
            seen.add(tool.name)
    return selected
