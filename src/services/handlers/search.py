"""Read-only tools: search, lookup, control and workspace maintenance."""

import asyncio
import logging
from typing import Any, Dict, List

from core.exceptions import ToolValidationError
from llm.models import ToolResult
from services.handlers.base import ExecutionRun, HandlerBase, string_list

logger = logging.getLogger(__name__)


def _table_summary(payload: Dict[str, Any], workspace_id: Any) -> Dict[str, Any]:
    table = payload.get("table") or payload
    return {
        "id": table.get("id"),
        "title": table.get("title"),
        "description": table.get("description"),
        "workspace_id": table.get("workspace_id") or workspace_id,
        "project_id": table.get("project_id"),
        "project_name": table.get("project_name"),
    }


class SearchHandlers(HandlerBase):
    """Search tools forward their arguments unchanged to the matching data action."""

    async def _search(self, action: str, args: Dict) -> ToolResult:
        return await self._call(action, {k: v for k, v in args.items() if v is not None})

    # -------------------------------------------------------------------------
    # Control + workspace
    # -------------------------------------------------------------------------

    async def _request_tool_groups(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Echo the requested groups so the caller can widen the tool set."""
        groups = [str(group) for group in args.get("tool_groups") or [] if str(group)]
        reason = args.get("reason") if isinstance(args.get("reason"), str) else None
        return ToolResult(success=True, data={"tool_groups": groups, "reason": reason})

    async def _reindex_workspace_content(self, args: Dict, run: ExecutionRun) -> ToolResult:
        workspace_id = self._require_workspace(run, args.get("workspace_id"))
        params = {"workspace_id": workspace_id}
        for key in ("include_blocks", "include_files", "include_docs", "max_items"):
            if args.get(key) is not None:
                params[key] = args[key]
        return await self._call("workspace.reindex", params)

    async def _unstructured_search_workspace(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Semantic search, trimmed to ``limit_parents`` sources of ``limit_chunks`` chunks each."""
        query = str(args.get("query") or "").strip()
        if not query:
            raise ToolValidationError("Missing query for unstructured_search_workspace")
        workspace_id = self._require_workspace(run)
        limit_parents = args.get("limit_parents") if isinstance(args.get("limit_parents"), int) else 10
        limit_chunks = args.get("limit_chunks") if isinstance(args.get("limit_chunks"), int) else 5

        result = await self.actions.invoke("search.unstructured", {"workspace_id": workspace_id, "query": query})
        if not result.ok:
            return self._wrap(result)

        trimmed = []
        for source in (result.data or [])[: max(1, limit_parents)]:
            chunks = source.get("chunks") if isinstance(source.get("chunks"), list) else []
            trimmed.append({**source, "chunks": chunks[: max(1, limit_chunks)]})
        return ToolResult(success=True, data=trimmed)

    # -------------------------------------------------------------------------
    # Entity searches
    # -------------------------------------------------------------------------

    async def _search_tasks(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("tasks.search", args)

    async def _search_projects(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("projects.search", args)

    async def _search_tabs(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("tabs.search", args)

    async def _search_clients(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("clients.search", args)

    async def _search_workspace_members(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("members.search", args)

    async def _search_table_rows(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("rows.search", args)

    async def _search_timeline_events(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("timeline_events.search", args)

    async def _search_blocks(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("blocks.search", args)

    async def _search_docs(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("docs.search", args)

    async def _search_doc_content(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("docs.search_content", args)

    async def _search_files(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("files.search", args)

    async def _search_tags(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("tags.search", args)

    async def _search_all(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("search.all", args)

    async def _resolve_entity_by_name(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("entities.resolve", args)

    async def _get_entity_by_id(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("entities.get", args)

    async def _get_entity_context(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._search("entities.context", args)

    async def _get_table_schema(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.get_table(args["table_id"]))

    async def _search_tables(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Prefer the table in focus, then the tables shown in the current tab."""
        context = run.context
        if context.context_table_id:
            schema = await self.actions.get_table(context.context_table_id)
            if schema.ok and schema.data:
                return ToolResult(success=True, data=[_table_summary(schema.data, context.workspace_id)])

        if context.current_tab_id:
            tables = await self._tables_in_tab(context.current_tab_id, context.workspace_id)
            search_text = str(args.get("search_text") or "").strip().lower()
            if search_text:
                tables = [t for t in tables if search_text in str(t.get("title") or "").lower()]
            if tables:
                return ToolResult(success=True, data=tables)

        return await self._search("tables.search", args)

    async def _tables_in_tab(self, tab_id: str, workspace_id: Any) -> List[Dict[str, Any]]:
        blocks = await self.actions.search("blocks", type="table", tab_id=tab_id)
        if not blocks.ok:
            logger.debug(f"Table block lookup in tab {tab_id} failed: {blocks.error}")
            return []
        table_ids = []
        for block in blocks.data or []:
            content = block.get("content") if isinstance(block.get("content"), dict) else {}
            table_ids.extend(string_list([content.get("table_id")]))
        table_ids = list(dict.fromkeys(table_ids))
        if not table_ids:
            return []

        schemas = await asyncio.gather(*(self.actions.get_table(table_id) for table_id in table_ids))
        return [_table_summary(schema.data, workspace_id) for schema in schemas if schema.ok and schema.data]
