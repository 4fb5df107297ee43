"""Workspace structure tools: projects, tabs, blocks, clients, docs, files,
row comments and custom properties."""

import logging
from typing import Any, Dict

from core.exceptions import EntityNotFoundError, ToolValidationError
from llm.models import ToolResult
from services.entity_resolver import NotFound, require_resolved
from services.handlers.base import ExecutionRun, HandlerBase, pick, string_list

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ("name", "email", "company", "phone", "address", "website", "notes")


class WorkspaceHandlers(HandlerBase):
    """Handlers that map almost one to one onto entity actions."""

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def _client_id_from_name(self, client_name: str, run: ExecutionRun) -> str:
        resolution = await run.resolver.resolve_client_id(client_name)
        if isinstance(resolution, NotFound):
            raise EntityNotFoundError(
                f'Client "{client_name}" not found. Create the client first or use an existing client name.'
            )
        return require_resolved(resolution, "client").id

    async def _create_project(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create a project, resolving ``client_name`` to a client id."""
        workspace_id = self._require_workspace(run)
        client_id = args.get("client_id")
        if not client_id and args.get("client_name"):
            client_id = await self._client_id_from_name(args["client_name"], run)

        payload = {"workspace_id": workspace_id, "name": args["name"], **pick(args, "status", "due_date", "project_type")}
        if client_id:
            payload["client_id"] = client_id
        return self._wrap(await self.actions.create("projects", payload))

    async def _update_project(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Update a project; a null or empty ``client_name`` clears the client."""
        updates = pick(args, "name", "status", "client_id", "due_date", "project_type")
        if "client_id" not in args and "client_name" in args:
            client_name = args["client_name"]
            updates["client_id"] = await self._client_id_from_name(client_name, run) if client_name else None
        if not updates:
            raise ToolValidationError("update_project needs at least one field to change.")
        return self._wrap(await self.actions.update("projects", args["project_id"], updates))

    async def _delete_project(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("projects", args["project_id"]))

    # -------------------------------------------------------------------------
    # Tabs
    # -------------------------------------------------------------------------

    async def _create_tab(self, args: Dict, run: ExecutionRun) -> ToolResult:
        project_id = args.get("project_id") or run.context.current_project_id
        if not project_id:
            raise ToolValidationError("create_tab: Missing project_id and could not infer it from context.")
        payload = {"project_id": project_id, "name": args["name"], **pick(args, "parent_tab_id")}
        return self._wrap(await self.actions.create("tabs", payload))

    async def _update_tab(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("tabs", args["tab_id"], pick(args, "name", "parent_tab_id")))

    async def _delete_tab(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("tabs", args["tab_id"]))

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    async def _create_block(self, args: Dict, run: ExecutionRun) -> ToolResult:
        tab_id = await run.resolver.resolve_tab_id(args)
        payload = {
            "tab_id": tab_id,
            "type": args["type"],
            **pick(args, "content", "position", "column", "parent_block_id"),
        }
        return self._wrap(await self.actions.create("blocks", payload))

    async def _create_chart_block(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create a chart; a simulation defaults to the chart block in focus."""
        tab_id = await run.resolver.resolve_tab_id(args)
        payload = {
            "tab_id": tab_id,
            "prompt": args["prompt"],
            **pick(args, "chart_type", "title", "explicit_data", "is_simulation", "simulation_description"),
        }
        original_chart_id = args.get("original_chart_id")
        if args.get("is_simulation") and not original_chart_id:
            original_chart_id = run.context.context_block_id
        if original_chart_id:
            payload["original_chart_id"] = original_chart_id
        return await self._call("charts.create", payload)

    async def _update_block(self, args: Dict, run: ExecutionRun) -> ToolResult:
        updates = pick(args, "content", "position", "column")
        return self._wrap(await self.actions.update("blocks", args["block_id"], updates))

    async def _delete_block(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("blocks", args["block_id"]))

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def _create_client(self, args: Dict, run: ExecutionRun) -> ToolResult:
        workspace_id = self._require_workspace(run)
        return self._wrap(await self.actions.create("clients", {"workspace_id": workspace_id, **pick(args, *CLIENT_FIELDS)}))

    async def _update_client(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("clients", args["client_id"], pick(args, *CLIENT_FIELDS)))

    async def _delete_client(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("clients", args["client_id"]))

    # -------------------------------------------------------------------------
    # Docs
    # -------------------------------------------------------------------------

    async def _create_doc(self, args: Dict, run: ExecutionRun) -> ToolResult:
        workspace_id = self._require_workspace(run)
        return self._wrap(await self.actions.create("docs", {"workspace_id": workspace_id, "title": args["title"]}))

    async def _update_doc(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("docs", args["doc_id"], pick(args, "title", "content")))

    async def _archive_doc(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("docs", args["doc_id"], {"is_archived": True}))

    async def _delete_doc(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("docs", args["doc_id"]))

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def _file_analysis_query(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Answer a question from extracted file text; per-file failures stay in the result."""
        file_ids = string_list(args.get("file_ids"))
        query = str(args.get("query") or "").strip()
        if not file_ids:
            raise ToolValidationError("Missing file_ids for file_analysis_query")
        if not query:
            raise ToolValidationError("Missing query for file_analysis_query")

        params: Dict[str, Any] = {
            "file_ids": file_ids,
            "query": query,
            "include_tables": args.get("include_tables") is not False,
            "max_text_chars": args.get("max_text_chars") if isinstance(args.get("max_text_chars"), int) else 8000,
            "max_table_rows": args.get("max_table_rows") if isinstance(args.get("max_table_rows"), int) else 50,
        }
        result = await self.actions.invoke("files.analyze", params)
        if not result.ok:
            return self._wrap(result)
        return ToolResult(success=True, data={"query": query, "results": result.data or []})

    async def _rename_file(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("files", args["file_id"], {"file_name": args["file_name"]}))

    # -------------------------------------------------------------------------
    # Row comments
    # -------------------------------------------------------------------------

    async def _create_comment(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.create("table_comments", {"row_id": args["row_id"], "content": args["text"]}))

    async def _update_comment(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("table_comments", args["comment_id"], {"content": args["text"]}))

    async def _delete_comment(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("table_comments", args["comment_id"]))

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    async def _create_property_definition(self, args: Dict, run: ExecutionRun) -> ToolResult:
        workspace_id = self._require_workspace(run)
        payload = {"workspace_id": workspace_id, **pick(args, "name", "type", "options")}
        return self._wrap(await self.actions.create("property_definitions", payload))

    async def _update_property_definition(self, args: Dict, run: ExecutionRun) -> ToolResult:
        updates = pick(args, "name", "options")
        return self._wrap(await self.actions.update("property_definitions", args["definition_id"], updates))

    async def _delete_property_definition(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("property_definitions", args["definition_id"]))

    async def _set_entity_property(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._call(
            "entity_properties.set",
            pick(args, "entity_type", "entity_id", "property_definition_id", "value"),
        )

    async def _remove_entity_property(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._call(
            "entity_properties.remove",
            pick(args, "entity_type", "entity_id", "property_definition_id"),
        )
