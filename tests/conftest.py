"""Pytest configuration and an in-memory data actions backend."""

import copy
import uuid
from typing import Any, Callable, Dict, List, Optional

import pytest

from core.config import Settings
from schemas.workspace import ExecutionContext
from services.data_actions import ActionResult, DataActions
from services.tool_dispatcher import ToolDispatcher
from services.undo_capture import UndoTracker

WORKSPACE_ID = "11111111-1111-4111-8111-111111111111"
USER_ID = "22222222-2222-4222-8222-222222222222"
PROJECT_ID = "33333333-3333-4333-8333-333333333333"
TAB_ID = "44444444-4444-4444-8444-444444444444"

# storage table -> entity collection
STORAGE_TABLES = {
    "task_items": "tasks",
    "task_subtasks": "subtasks",
    "table_fields": "fields",
    "table_rows": "rows",
}

TITLE_KEYS = ("name", "title", "file_name")


def new_id() -> str:
    return str(uuid.uuid4())


class InMemoryDataActions(DataActions):
    """Stateful fake of the workspace backend.

    Entities live in ``self.store[entity][id]``. Every call is recorded in
    ``self.calls``; ``self.failures[action] = message`` makes an action
    fail, and ``self.rpcs[name]`` installs an atomic RPC (all RPCs are
    unavailable otherwise).
    """

    def __init__(self):
        self.store: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.rpc_calls: List[tuple] = []
        self.failures: Dict[str, str] = {}
        self.rpcs: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.assignees: Dict[str, List[Dict[str, Any]]] = {}
        self.tags: Dict[str, List[str]] = {}

    # -------------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------------

    def collection(self, entity: str) -> Dict[str, Dict[str, Any]]:
        return self.store.setdefault(STORAGE_TABLES.get(entity, entity), {})

    def add(self, entity: str, **record: Any) -> Dict[str, Any]:
        record.setdefault("id", new_id())
        self.collection(entity)[record["id"]] = record
        return record

    def add_member(self, name: str, email: Optional[str] = None) -> Dict[str, Any]:
        return self.add("members", user_id=new_id(), name=name, email=email)

    def add_table(self, title: str, fields: List[Dict[str, Any]], rows: Optional[List[Dict[str, Any]]] = None) -> str:
        table = self.add("tables", title=title, workspace_id=WORKSPACE_ID)
        by_name = {}
        for order, spec in enumerate(fields):
            field = self.add(
                "fields",
                table_id=table["id"],
                name=spec["name"],
                type=spec.get("type", "text"),
                config=spec.get("config") or {},
                is_primary=bool(spec.get("is_primary")),
                order=order,
            )
            by_name[spec["name"]] = field["id"]
        for order, data in enumerate(rows or []):
            self.add("rows", table_id=table["id"], order=order, data={by_name[k]: v for k, v in data.items()})
        return table["id"]

    def fields_of(self, table_id: str) -> List[Dict[str, Any]]:
        fields = [f for f in self.collection("fields").values() if f["table_id"] == table_id]
        return sorted(fields, key=lambda f: f.get("order") or 0)

    def rows_of(self, table_id: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.collection("rows").values() if r["table_id"] == table_id]
        return sorted(rows, key=lambda r: r.get("order") or 0)

    def actions_called(self) -> List[str]:
        return [action for action, _ in self.calls]

    # -------------------------------------------------------------------------
    # DataActions
    # -------------------------------------------------------------------------

    async def invoke(self, action: str, params: Dict[str, Any]) -> ActionResult:
        self.calls.append((action, params))
        if action in self.failures:
            return ActionResult(error=self.failures[action])
        entity, _, verb = action.partition(".")
        special = getattr(self, f"_{entity}_{verb}", None)
        if special is not None:
            return special(params)
        handler = getattr(self, f"_{verb}", None)
        if handler is None:
            return ActionResult(data={})
        return handler(entity, params)

    async def rpc(self, name: str, params: Dict[str, Any]) -> ActionResult:
        self.rpc_calls.append((name, params))
        if name not in self.rpcs:
            return ActionResult(error=f"RPC unavailable: {name}", unavailable=True)
        return ActionResult(data=self.rpcs[name](params))

    async def fetch_rows(self, table, column, values, where=None) -> ActionResult:
        records = [
            copy.deepcopy(record)
            for record in self.collection(table).values()
            if record.get(column) in values and all(record.get(k) == v for k, v in (where or {}).items())
        ]
        return ActionResult(data=records)

    async def upsert_rows(self, table, rows, on_conflict) -> ActionResult:
        for row in rows:
            self.collection(table)[row["id"]] = copy.deepcopy(row)
        return ActionResult(data={"upserted": len(rows)})

    async def delete_rows(self, table, ids=None, id_column="id", where=None) -> ActionResult:
        collection = self.collection(table)
        doomed = [
            key for key, record in collection.items()
            if (ids is not None and record.get(id_column) in ids)
            or (where is not None and all(record.get(k) == v for k, v in where.items()))
        ]
        for key in doomed:
            del collection[key]
        return ActionResult(data={"deleted": len(doomed)})

    # -------------------------------------------------------------------------
    # Generic verbs
    # -------------------------------------------------------------------------

    def _create(self, entity: str, params: Dict[str, Any]) -> ActionResult:
        return ActionResult(data=dict(self.add(entity, **dict(params))))

    def _update(self, entity: str, params: Dict[str, Any]) -> ActionResult:
        record = self.collection(entity).get(params["id"])
        if record is None:
            return ActionResult(error=f"{entity} {params['id']} not found")
        record.update(params.get("updates") or {})
        return ActionResult(data=dict(record))

    def _delete(self, entity: str, params: Dict[str, Any]) -> ActionResult:
        if self.collection(entity).pop(params["id"], None) is None:
            return ActionResult(error=f"{entity} {params['id']} not found")
        return ActionResult(data={"id": params["id"]})

    def _search(self, entity: str, params: Dict[str, Any]) -> ActionResult:
        search_text = str(params.get("search_text") or "").lower()
        limit = params.get("limit") or 50
        filters = {k: v for k, v in params.items() if k not in ("search_text", "limit")}
        hits = []
        for record in self.collection(entity).values():
            if any(record.get(k) != v for k, v in filters.items()):
                continue
            if search_text:
                title = " ".join(str(record.get(k) or "") for k in TITLE_KEYS).lower()
                if search_text not in title and search_text != str(record.get("user_id", "")).lower():
                    continue
            hits.append(dict(record))
        return ActionResult(data=hits[:limit])

    # -------------------------------------------------------------------------
    # Entity-specific actions
    # -------------------------------------------------------------------------

    def _tables_create(self, params: Dict[str, Any]) -> ActionResult:
        """New tables start with Name, Column 2, Column 3 and three empty rows."""
        table = self.add("tables", **dict(params))
        for order, name in enumerate(("Name", "Column 2", "Column 3")):
            self.add("fields", table_id=table["id"], name=name, type="text", config={}, is_primary=order == 0, order=order)
        for order in range(3):
            self.add("rows", table_id=table["id"], order=order, data={})
        return ActionResult(data={"table": dict(table)})

    def _tables_get(self, params: Dict[str, Any]) -> ActionResult:
        table = self.collection("tables").get(params["table_id"])
        if table is None:
            return ActionResult(error="Table not found")
        return ActionResult(data={"table": dict(table), "fields": [dict(f) for f in self.fields_of(table["id"])]})

    def _fields_create(self, params: Dict[str, Any]) -> ActionResult:
        order = len(self.fields_of(params["table_id"]))
        record = {"config": {}, "is_primary": False, "order": order, **params}
        return ActionResult(data=dict(self.add("fields", **record)))

    def _rows_list(self, params: Dict[str, Any]) -> ActionResult:
        rows = self.rows_of(params["table_id"])
        offset = params.get("offset") or 0
        return ActionResult(data={"rows": rows[offset:offset + params["limit"]], "total": len(rows)})

    def _rows_search(self, params: Dict[str, Any]) -> ActionResult:
        return ActionResult(data=self.rows_of(params["table_id"])[: params.get("limit") or 500])

    def _rows_bulk_insert(self, params: Dict[str, Any]) -> ActionResult:
        start = len(self.rows_of(params["table_id"]))
        ids = []
        for offset, row in enumerate(params["rows"]):
            record = self.add("rows", table_id=params["table_id"], order=start + offset, data=dict(row.get("data") or {}))
            ids.append(record["id"])
        return ActionResult(data={"inserted_ids": ids})

    def _rows_bulk_update(self, params: Dict[str, Any]) -> ActionResult:
        for row_id in params["row_ids"]:
            self.collection("rows")[row_id]["data"].update(params["updates"])
        return ActionResult(data={"updated": len(params["row_ids"])})

    def _rows_bulk_delete(self, params: Dict[str, Any]) -> ActionResult:
        for row_id in params["row_ids"]:
            self.collection("rows").pop(row_id, None)
        return ActionResult(data={"deleted": len(params["row_ids"])})

    def _tasks_set_assignees(self, params: Dict[str, Any]) -> ActionResult:
        self.assignees[params["task_id"]] = list(params["assignees"])
        return ActionResult(data={"task_id": params["task_id"], "assignees": params["assignees"]})

    def _tasks_set_tags(self, params: Dict[str, Any]) -> ActionResult:
        self.tags[params["task_id"]] = list(params["tag_names"])
        return ActionResult(data={"task_id": params["task_id"], "tags": params["tag_names"]})


@pytest.fixture
def settings():
    return Settings(_env_file=None, DATA_ACTIONS_URL="http://backend.test/api")


@pytest.fixture
def backend():
    return InMemoryDataActions()


@pytest.fixture
def dispatcher(backend, settings):
    return ToolDispatcher(actions=backend, settings=settings)


@pytest.fixture
def context():
    return ExecutionContext(
        workspace_id=WORKSPACE_ID,
        user_id=USER_ID,
        current_project_id=PROJECT_ID,
        current_tab_id=TAB_ID,
    )


@pytest.fixture
def tracker():
    return UndoTracker()


@pytest.fixture
def undo_context(context, tracker):
    return context.model_copy(update={"undo_tracker": tracker})
