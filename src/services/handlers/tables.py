"""Table tools: tables, fields, rows and the composite table operations."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import DataActionError, EntityNotFoundError, ToolValidationError
from llm.models import ToolResult
from schemas.workspace import TableField
from services.entity_resolver import require_resolved
from services.execution_strategy import Saga, run_atomic_or_saga
from services.field_matching import (
    build_row_filters,
    get_option_entries,
    is_select_like,
    is_uuid,
    matches_row_filters,
    normalize_key,
    resolve_field,
    resolve_update_value,
)
from services.handlers.base import ExecutionRun, HandlerBase, pick, string_list
from services.schema_inference import enhance_fields_with_inference, normalize_rows_for_select_fields
from services.table_support import (
    apply_field_plan,
    enhance_fields_and_normalize_select_values,
    is_new_empty_table,
    map_row_data_to_field_ids,
    maybe_ensure_fields_for_rows,
    maybe_remove_default_rows,
    normalize_insert_rows,
    plan_field_creation,
    should_skip_duplicate_insert,
)

logger = logging.getLogger(__name__)

FIELD_NAME_HINT = "use update_table_rows_by_field_names"


def _describe_filters(filters: Optional[Dict[str, Any]]) -> str:
    return ", ".join(f"{key}={json.dumps(value, default=str)}" for key, value in (filters or {}).items())


def _summary_hint(summary: Dict[str, Any]) -> str:
    parts = ", ".join(f"{value} {key}" for key, value in summary.items())
    return f"Updated table with {parts}." if parts else "No table changes requested."


class TableHandlers(HandlerBase):
    """Dynamic table tools.

    Field-name based operations resolve human names against the live
    schema; id based operations insist on UUIDs and point the caller at
    the field-name variant otherwise.
    """

    async def _nested_data(self, name: str, arguments: Dict[str, Any], run: ExecutionRun) -> Any:
        result = await self._nested(name, arguments, run)
        if not result.success:
            raise DataActionError(name, result.error or f"{name} failed")
        return result.data

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    async def _create_table(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create a table and, with a tab, the block that shows it.

        When the block cannot be created the table is deleted again.
        """
        workspace_id = self._require_workspace(run, args.get("workspace_id"))
        tab_id = args.get("tab_id") or run.context.current_tab_id
        payload = {"workspace_id": workspace_id, "title": args["title"], **pick(args, "description")}
        project_id = args.get("project_id") or run.context.current_project_id
        if project_id:
            payload["project_id"] = project_id

        async def create_table(state: Dict[str, Any]) -> Dict[str, Any]:
            return (await self.actions.create("tables", payload)).unwrap("tables.create")

        async def delete_table(state: Dict[str, Any]) -> None:
            await self.actions.delete("tables", state["table"]["table"]["id"])

        async def create_block(state: Dict[str, Any]) -> Dict[str, Any]:
            table_id = state["table"]["table"]["id"]
            created = await self.actions.create(
                "blocks", {"tab_id": tab_id, "type": "table", "content": {"table_id": table_id}}
            )
            return created.unwrap("blocks.create")

        saga = Saga("create_table").add_step("table", create_table, compensate=delete_table)
        if tab_id:
            saga.add_step("block", create_block)
        try:
            state = await saga.run()
        except DataActionError as e:
            if e.action != "blocks.create":
                raise
            raise DataActionError(e.action, f"Failed to add table to tab: {e.message}. Table creation rolled back.")

        data = dict(state["table"])
        if "block" in state:
            data["block"] = state["block"]
        return ToolResult(success=True, data=data)

    async def _create_table_full(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create a table with fields and rows in one call.

        Field types and options are inferred from the rows first. The
        atomic RPC creates table, fields and rows together; the saga
        fallback runs the granular tools and deletes the table (and its
        block) when a later step fails.
        """
        workspace_id = self._require_workspace(run, args.get("workspace_id"))
        title = args["title"]
        tab_id = args.get("tab_id") or run.context.current_tab_id
        project_id = args.get("project_id") or run.context.current_project_id
        rows = [row for row in args.get("rows") or [] if isinstance(row, dict)]
        rows = [row if "data" in row else {"data": row} for row in rows]
        fields = enhance_fields_with_inference([f for f in args.get("fields") or [] if isinstance(f, dict)], rows)
        rows = normalize_rows_for_select_fields(fields, rows)

        table_payload = {"workspace_id": workspace_id, "title": title, **pick(args, "description")}
        if project_id:
            table_payload["project_id"] = project_id

        async def delete_table(state: Dict[str, Any]) -> None:
            await self.actions.delete("tables", state["table_id"])

        async def create_block(state: Dict[str, Any]) -> Optional[str]:
            if not tab_id:
                return None
            created = await self.actions.create(
                "blocks", {"tab_id": tab_id, "type": "table", "content": {"table_id": state["table_id"]}}
            )
            return created.unwrap("blocks.create")["id"]

        async def delete_block(state: Dict[str, Any]) -> None:
            if state.get("block_id"):
                await self.actions.delete("blocks", state["block_id"])

        async def create_table(state: Dict[str, Any]) -> str:
            created = (await self.actions.create("tables", table_payload)).unwrap("tables.create")
            return created["table"]["id"]

        async def create_fields(state: Dict[str, Any]) -> int:
            if not fields:
                return 0
            created = await self._nested_data(
                "bulk_create_fields", {"table_id": state["table_id"], "fields": fields}, run
            )
            return len(created) if isinstance(created, list) else 0

        async def insert_rows(state: Dict[str, Any]) -> int:
            if not rows:
                return 0
            inserted = await self._nested_data("bulk_insert_rows", {"table_id": state["table_id"], "rows": rows}, run)
            return len((inserted or {}).get("inserted_ids") or [])

        async def fallback() -> Dict[str, Any]:
            saga = Saga("create_table_full")
            saga.add_step("table_id", create_table, compensate=delete_table)
            saga.add_step("block_id", create_block, compensate=delete_block)
            saga.add_step("fields_created", create_fields)
            saga.add_step("rows_inserted", insert_rows)
            return await saga.run()

        outcome = await run_atomic_or_saga(
            self.actions,
            "create_table_full",
            {**table_payload, "fields": fields, "rows": rows},
            fallback,
            self.settings,
        )
        state = dict(outcome.data or {})
        if outcome.strategy == "atomic":
            # The RPC does not place the table in a tab
            block_saga = Saga("create_table_full.block").add_step("block_id", create_block)
            try:
                await block_saga.run(state)
            except DataActionError:
                await delete_table(state)
                raise

        data = {
            "table_id": state.get("table_id"),
            "fields_created": state.get("fields_created") or 0,
            "rows_inserted": state.get("rows_inserted") or 0,
            "block_id": state.get("block_id"),
        }
        hint = f'Created table "{title}" with {data["fields_created"]} fields and {data["rows_inserted"]} rows.'
        return ToolResult(success=True, data=data, hint=hint)

    async def _update_table_full(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Apply schema and row changes to one table.

        The atomic RPC is used only when no undo tracker is attached; with
        a tracker each change runs as a nested tool so it journals its own
        undo steps.
        """
        table_id = await self._table_id_for_destructive(args, run, "update_table_full")
        add_fields = [f for f in args.get("add_fields") or [] if isinstance(f, dict)]
        update_fields = [f for f in args.get("update_fields") or [] if isinstance(f, dict)]
        delete_fields = string_list(args.get("delete_fields"))
        insert_rows = [r for r in args.get("insert_rows") or [] if isinstance(r, dict)]
        update_rows = args.get("update_rows") if isinstance(args.get("update_rows"), dict) else None
        delete_row_ids = string_list(args.get("delete_row_ids"))
        metadata = pick(args, "title", "description")

        has_operations = bool(
            metadata or add_fields or update_fields or delete_fields or insert_rows or update_rows or delete_row_ids
        )

        async def apply_steps() -> Dict[str, Any]:
            summary: Dict[str, Any] = {}
            if metadata:
                (await self.actions.update("tables", table_id, metadata)).unwrap("tables.update")
            if add_fields:
                await self._nested_data("bulk_create_fields", {"table_id": table_id, "fields": add_fields}, run)
                summary["fields_added"] = len(add_fields)

            schema: List[TableField] = []
            if update_fields or any(not is_uuid(name) for name in delete_fields):
                schema = await self.actions.get_table_fields(table_id)
            by_name = {normalize_key(field.name): field.id for field in schema}

            if update_fields:
                for entry in update_fields:
                    field_id = entry.get("field_id") or by_name.get(normalize_key(entry.get("field_name") or ""))
                    if not field_id:
                        logger.debug(f"update_table_full: no field matches {entry}")
                        continue
                    await self._nested_data("update_field", {"field_id": field_id, **pick(entry, "name", "config")}, run)
                summary["fields_updated"] = len(update_fields)
            if delete_fields:
                for identifier in delete_fields:
                    field_id = identifier if is_uuid(identifier) else by_name.get(normalize_key(identifier))
                    if field_id:
                        await self._nested_data("delete_field", {"field_id": field_id}, run)
                summary["fields_deleted"] = len(delete_fields)
            if insert_rows:
                await self._nested_data("bulk_insert_rows", {"table_id": table_id, "rows": insert_rows}, run)
                summary["rows_inserted"] = len(insert_rows)
            if update_rows:
                updated = await self._nested_data(
                    "update_table_rows_by_field_names",
                    {"table_id": table_id, **pick(update_rows, "filters", "updates")},
                    run,
                )
                summary["rows_updated"] = (updated or {}).get("updated", 0)
            if delete_row_ids:
                await self._nested_data("delete_rows", {"row_ids": delete_row_ids}, run)
                summary["rows_deleted"] = len(delete_row_ids)
            return summary

        rpc_params = {
            "table_id": table_id,
            **metadata,
            "add_fields": add_fields or None,
            "update_fields": update_fields or None,
            "delete_fields": delete_fields or None,
            "insert_rows": insert_rows or None,
            "update_rows": update_rows,
            "delete_row_ids": delete_row_ids or None,
        }
        outcome = await run_atomic_or_saga(
            self.actions,
            "update_table_full",
            {key: value for key, value in rpc_params.items() if value is not None},
            apply_steps,
            self.settings,
            use_atomic=has_operations and not run.has_undo_tracker,
        )
        summary = outcome.data if isinstance(outcome.data, dict) else {}
        return ToolResult(success=True, data=summary, hint=_summary_hint(summary))

    async def _table_id_for_destructive(self, args: Dict, run: ExecutionRun, tool_name: str) -> str:
        """``table_id`` or a ``table_name`` match; never the table in focus."""
        if args.get("table_id"):
            return args["table_id"]
        if args.get("table_name"):
            resolution = await run.resolver.resolve_by_name("tables", args["table_name"])
            return require_resolved(resolution, "table").id
        raise ToolValidationError(f"{tool_name} requires table_id or table_name.")

    async def _delete_table(self, args: Dict, run: ExecutionRun) -> ToolResult:
        table_id = await self._table_id_for_destructive(args, run, "delete_table")
        return self._wrap(await self.actions.delete("tables", table_id))

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    async def _create_field(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Return an existing field of that name, else rename a placeholder column, else create."""
        table_id = args["table_id"]
        existing = await self.actions.get_table_fields(table_id)
        is_empty = bool(existing) and await is_new_empty_table(self.actions, table_id)
        spec = pick(args, "name", "type", "config", "is_primary")
        plan = plan_field_creation(existing, [spec], is_empty)[0]
        return self._wrap(await apply_field_plan(self.actions, table_id, plan))

    async def _bulk_create_fields(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Plan all fields against one schema read, then write them concurrently."""
        table_id = args["table_id"]
        specs = [spec for spec in args.get("fields") or [] if isinstance(spec, dict)]
        if not specs:
            raise ToolValidationError("fields must be a non-empty array")
        unnamed = [index for index, spec in enumerate(specs) if not spec.get("name")]
        if unnamed:
            raise ToolValidationError(f"Fields at index {unnamed} are missing a name.")

        existing = await self.actions.get_table_fields(table_id)
        is_empty = bool(existing) and await is_new_empty_table(self.actions, table_id)
        plans = plan_field_creation(existing, specs, is_empty)
        results = await asyncio.gather(*(apply_field_plan(self.actions, table_id, plan) for plan in plans))

        errors = [result.error for result in results if not result.ok]
        if errors:
            return ToolResult(success=False, error=errors[0], error_type="execution_error")
        return ToolResult(success=True, data=[result.data for result in results])

    async def _update_field(self, args: Dict, run: ExecutionRun) -> ToolResult:
        updates = pick(args, "name", "config")
        if not updates:
            raise ToolValidationError("update_field needs a name or config.")
        return self._wrap(await self.actions.update("fields", args["field_id"], updates))

    async def _delete_field(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("fields", args["field_id"]))

    # -------------------------------------------------------------------------
    # Rows
    # -------------------------------------------------------------------------

    async def _create_row(self, args: Dict, run: ExecutionRun) -> ToolResult:
        table_id = await run.resolver.resolve_table_id(args)
        data = args.get("data") if isinstance(args.get("data"), dict) else {}
        fields = await self.actions.get_table_fields(table_id)
        mapped, warnings = map_row_data_to_field_ids(fields, [{"data": data}])
        normalized = await enhance_fields_and_normalize_select_values(self.actions, table_id, mapped)
        result = await self.actions.create("rows", {"table_id": table_id, "data": normalized[0]["data"]})
        tool_result = self._wrap(result)
        tool_result.warnings = warnings
        return tool_result

    async def _update_row(self, args: Dict, run: ExecutionRun) -> ToolResult:
        self._require_uuids([args["row_id"]], f"update_row requires a row_id UUID. To match rows by field values, {FIELD_NAME_HINT}.")
        data = args.get("data") if isinstance(args.get("data"), dict) else {}
        return self._wrap(await self.actions.update("rows", args["row_id"], {"data": data}))

    async def _update_cell(self, args: Dict, run: ExecutionRun) -> ToolResult:
        self._require_uuids([args["row_id"]], f"update_cell requires a row_id UUID. If you only have field names/labels, {FIELD_NAME_HINT}.")
        self._require_uuids([args["field_id"]], f"update_cell requires a field_id UUID. If you only have field names/labels, {FIELD_NAME_HINT}.")
        return await self._call("rows.update_cell", pick(args, "row_id", "field_id", "value"))

    async def _delete_row(self, args: Dict, run: ExecutionRun) -> ToolResult:
        self._require_uuids([args["row_id"]], "delete_row requires a row_id UUID. Use search_table_rows to find row ids.")
        return self._wrap(await self.actions.delete("rows", args["row_id"]))

    async def _delete_rows(self, args: Dict, run: ExecutionRun) -> ToolResult:
        row_ids = string_list(args.get("row_ids"))
        if not row_ids:
            raise ToolValidationError("delete_rows requires a non-empty row_ids array.")
        self._require_uuids(row_ids, "delete_rows requires row_ids as UUIDs. Use search_table_rows to find row ids.")
        return await self._call("rows.bulk_delete", {"row_ids": row_ids})

    async def _bulk_insert_rows(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Insert rows keyed by field name.

        On a brand-new table unknown keys become fields; elsewhere they are
        dropped with a warning. Re-sending rows whose primary values all
        exist already inserts nothing.
        """
        table_id = await run.resolver.resolve_table_id(args)
        rows = normalize_insert_rows(args)
        if rows is None:
            raise ToolValidationError("Missing rows for bulk_insert_rows. Expected { rows: [{ data: {...} }] }.")
        if not rows:
            return ToolResult(success=True, data={"inserted_ids": []})

        await maybe_ensure_fields_for_rows(self.actions, table_id, rows)
        await maybe_remove_default_rows(self.actions, table_id)

        fields = await self.actions.get_table_fields(table_id)
        mapped, warnings = map_row_data_to_field_ids(fields, rows)
        if await should_skip_duplicate_insert(self.actions, fields, table_id, mapped, self.settings):
            logger.info(f"bulk_insert_rows: all {len(mapped)} rows already exist in table {table_id}")
            return ToolResult(
                success=True,
                data={"inserted_ids": []},
                warnings=warnings,
                hint="All rows already exist in the table; nothing was inserted.",
            )

        normalized = await enhance_fields_and_normalize_select_values(self.actions, table_id, mapped)
        result = await self.actions.invoke("rows.bulk_insert", {"table_id": table_id, "rows": normalized})
        tool_result = self._wrap(result)
        tool_result.warnings = warnings
        return tool_result

    async def _bulk_update_rows(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Same updates on rows by id; keys must be field ids and select values option ids."""
        row_ids = args.get("row_ids") if isinstance(args.get("row_ids"), list) else []
        row_ids_message = (
            "bulk_update_rows requires row_ids as UUIDs. "
            "If you need to match rows by field names/values, use update_table_rows_by_field_names."
        )
        if not row_ids:
            raise ToolValidationError(row_ids_message)
        self._require_uuids(row_ids, row_ids_message)

        updates = args.get("updates") if isinstance(args.get("updates"), dict) else {}
        updates_message = (
            f"bulk_update_rows requires updates with field_id UUID keys. If you only have field names/labels, {FIELD_NAME_HINT}."
        )
        if not updates:
            raise ToolValidationError(updates_message)
        self._require_uuids(updates, updates_message)

        fields = {field.id: field for field in await self.actions.get_table_fields(args["table_id"])}
        for field_id, raw_value in updates.items():
            field = fields.get(field_id)
            if field is None or not is_select_like(field.type):
                continue
            _, options = get_option_entries(field)
            if not options:
                raise ToolValidationError(
                    f'bulk_update_rows: "{field.name}" has no options configured. '
                    f"Use update_table_rows_by_field_names to create options and update rows."
                )
            option_ids = {str(option.get("id")) for option in options}
            values = raw_value if isinstance(raw_value, list) else [raw_value]
            if not all(str(value) in option_ids for value in values):
                raise ToolValidationError(
                    f'bulk_update_rows: "{field.name}" expects option IDs, but provided values were not found. '
                    f"Use update_table_rows_by_field_names to update by labels."
                )

        return await self._call(
            "rows.bulk_update", {"table_id": args["table_id"], "row_ids": row_ids, "updates": updates}
        )

    # -------------------------------------------------------------------------
    # Field-name updates
    # -------------------------------------------------------------------------

    async def _updates_by_field_id(
        self, fields: List[TableField], updates: Dict[str, Any], run: ExecutionRun
    ) -> Dict[str, Any]:
        """Resolve ``{FieldName: value}`` to ``{field_id: stored value}``.

        Missing select options are created and persisted through
        ``update_field`` before any row is written.
        """
        resolved: Dict[str, Any] = {}
        for key, raw_value in updates.items():
            field = resolve_field(fields, key)
            if field is None:
                raise ToolValidationError(f'Unknown field "{key}" in updates.')
            value, updated_config = resolve_update_value(field, raw_value, allow_create=True)
            if updated_config is not None:
                await self._nested_data("update_field", {"field_id": field.id, "config": updated_config}, run)
                field.config = updated_config
            resolved[field.id] = value
        return resolved

    @staticmethod
    def _matching_row_ids(
        rows: List[Dict[str, Any]], fields: List[TableField], filters: Optional[Dict[str, Any]]
    ) -> List[str]:
        if not filters:
            ids = [row["id"] for row in rows]
            if not ids:
                raise EntityNotFoundError(f"No rows found to update. Scanned {len(rows)} rows.")
            return ids

        row_filters, unknown = build_row_filters(fields, filters)
        ids = [] if unknown else [
            row["id"] for row in rows if matches_row_filters(row.get("data") or {}, row_filters)
        ]
        if not ids:
            available = ", ".join(field.name for field in fields)
            raise EntityNotFoundError(
                f"No rows matched filter {{{_describe_filters(filters)}}}. Scanned {len(rows)} rows. "
                f"Check that field names and values match exactly (case-insensitive). Available fields: {available}"
            )
        return ids

    async def _load_schema_and_rows(self, table_id: str, limit: int) -> Tuple[List[TableField], List[Dict[str, Any]]]:
        fields = await self.actions.get_table_fields(table_id)
        found = await self.actions.search("rows", table_id=table_id, limit=limit)
        rows = found.unwrap("rows.search") or []
        return fields, rows

    def _scan_limit(self, args: Dict) -> int:
        return args["limit"] if isinstance(args.get("limit"), int) else self.settings.ROW_SCAN_LIMIT

    async def _update_table_rows_by_field_names(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Update rows chosen by field-name filters; an empty filter updates every scanned row."""
        table_id = args["table_id"]
        updates = args.get("updates")
        if not isinstance(updates, dict) or not updates:
            raise ToolValidationError("updates are required for update_table_rows_by_field_names.")
        filters = args.get("filters") if isinstance(args.get("filters"), dict) else None
        limit = self._scan_limit(args)

        async def fallback() -> Dict[str, Any]:
            fields, rows = await self._load_schema_and_rows(table_id, limit)
            resolved = await self._updates_by_field_id(fields, updates, run)
            row_ids = self._matching_row_ids(rows, fields, filters)
            result = await self.actions.invoke(
                "rows.bulk_update", {"table_id": table_id, "row_ids": row_ids, "updates": resolved}
            )
            result.unwrap("rows.bulk_update")
            return {"updated": len(row_ids), "row_ids": row_ids}

        outcome = await run_atomic_or_saga(
            self.actions,
            "update_table_rows_by_field_names",
            {"table_id": table_id, "filters": filters, "updates": updates, "limit": limit},
            fallback,
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)

    async def _bulk_update_rows_by_field_names(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Several filter/update pairs against one schema and row scan."""
        table_id = args["table_id"]
        entries = args.get("rows")
        if not isinstance(entries, list) or not entries:
            raise ToolValidationError("rows are required for bulk_update_rows_by_field_names.")
        limit = self._scan_limit(args)

        async def fallback() -> Dict[str, Any]:
            fields, rows = await self._load_schema_and_rows(table_id, limit)
            results = []
            all_row_ids: List[str] = []
            for index, entry in enumerate(entries):
                entry = entry if isinstance(entry, dict) else {}
                updates = entry.get("updates")
                if not isinstance(updates, dict) or not updates:
                    raise ToolValidationError(f"Missing updates for row entry at index {index}.")
                filters = entry.get("filters") if isinstance(entry.get("filters"), dict) else None
                resolved = await self._updates_by_field_id(fields, updates, run)
                row_ids = self._matching_row_ids(rows, fields, filters)
                result = await self.actions.invoke(
                    "rows.bulk_update", {"table_id": table_id, "row_ids": row_ids, "updates": resolved}
                )
                result.unwrap("rows.bulk_update")
                all_row_ids.extend(row_ids)
                results.append({"index": index, "updated": len(row_ids), "row_ids": row_ids, "filters": filters})
            return {
                "updated": len(all_row_ids),
                "row_ids": all_row_ids,
                "results": results,
                "total_rows_scanned": len(rows),
            }

        outcome = await run_atomic_or_saga(
            self.actions,
            "bulk_update_rows_by_field_names",
            {"table_id": table_id, "rows": entries, "limit": limit},
            fallback,
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)
