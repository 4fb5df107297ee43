"""Task tools: task items, assignees, tags, subtasks and task comments."""

import asyncio
import logging
from typing import Any, Dict, List

from core.exceptions import (
    AmbiguousEntityError,
    DataActionError,
    EntityNotFoundError,
    ToolError,
    ToolValidationError,
)
from llm.models import ToolResult
from schemas.workspace import ResolvedAssignee
from services.entity_resolver import (
    TASK_BLOCK_CONTENT,
    AssigneeResolution,
    format_ambiguity_error,
    normalize_assignee_entries,
    require_resolved,
)
from services.execution_strategy import Saga, run_atomic_or_saga
from services.handlers.base import ExecutionRun, HandlerBase, gather_all, pick, string_list

logger = logging.getLogger(__name__)

TASK_FIELDS = ("title", "status", "priority", "description", "due_date", "due_time", "start_date")

# tasks.create errors that mean the block id pointed at the wrong container
TASK_BLOCK_NOT_FOUND = "Task block not found"
NOT_A_TASK_BLOCK = "Block is not a task block"


def _assignee_payload(assignees: List[ResolvedAssignee]) -> List[Dict[str, Any]]:
    return [assignee.to_payload() for assignee in assignees]


def _validate_assignee_entries(raw: Any) -> List[Dict[str, Any]]:
    entries = normalize_assignee_entries(raw)
    for entry in entries:
        if not any(entry.get(key) for key in ("id", "name", "user_id", "userId")):
            raise ToolValidationError("Invalid assignee format. Each assignee needs an id or a name.")
    return entries


class TaskHandlers(HandlerBase):
    """Task item tools.

    Creates and full updates try the atomic ``*_full`` RPC first and fall
    back to a saga of granular actions. Assignee names are resolved before
    anything is written; an ambiguous name fails the whole call.
    """

    async def _resolve_assignees(self, raw: Any, run: ExecutionRun) -> List[ResolvedAssignee]:
        entries = _validate_assignee_entries(raw)
        if not entries:
            return []
        resolution = await run.resolver.resolve_assignees(entries)
        resolution.raise_for_ambiguity()
        return resolution.resolved

    async def _insert_task(self, payload: Dict[str, Any], run: ExecutionRun) -> Dict[str, Any]:
        """Create the task row, retrying once in the right task block.

        A tab id passed as the block id, or a block of another type, is
        redirected to the task block of that tab (created when missing).
        """
        result = await self.actions.create("tasks", payload)
        if result.ok:
            return result.data

        block_id = payload["task_block_id"]
        tab_id = None
        if result.error == TASK_BLOCK_NOT_FOUND:
            tab = await self.actions.invoke("entities.get", {"entity_type": "tab", "id": block_id})
            if tab.ok and tab.data:
                tab_id = block_id
        elif result.error == NOT_A_TASK_BLOCK:
            block = await self.actions.invoke("entities.get", {"entity_type": "block", "id": block_id})
            if block.ok and block.data:
                context = block.data.get("context") or {}
                tab_id = context.get("tab_id") or block.data.get("tab_id")

        if not tab_id:
            raise DataActionError("tasks.create", result.error)

        task_block_id = await run.resolver.task_block_for_tab(tab_id)
        logger.info(f"Retrying task creation in task block {task_block_id} of tab {tab_id}")
        retried = await self.actions.create("tasks", {**payload, "task_block_id": task_block_id})
        return retried.unwrap("tasks.create")

    async def _create_one_task(
        self,
        payload: Dict[str, Any],
        assignees: List[ResolvedAssignee],
        tags: List[str],
        run: ExecutionRun,
    ) -> Any:
        async def create_task(state: Dict[str, Any]) -> Dict[str, Any]:
            return await self._insert_task(payload, run)

        async def delete_task(state: Dict[str, Any]) -> None:
            await self.actions.delete("tasks", state["task"]["id"])

        async def link_relations(state: Dict[str, Any]) -> None:
            task_id = state["task"]["id"]
            writes = []
            if assignees:
                writes.append(self.actions.invoke(
                    "tasks.set_assignees",
                    {"task_id": task_id, "assignees": _assignee_payload(assignees), "replace_existing": False},
                ))
            if tags:
                writes.append(self.actions.invoke("tasks.set_tags", {"task_id": task_id, "tag_names": tags}))
            for result in await asyncio.gather(*writes):
                result.unwrap("tasks.link_relations")

        async def fallback() -> Dict[str, Any]:
            saga = Saga("create_task_item")
            saga.add_step("task", create_task, compensate=delete_task)
            saga.add_step("relations", link_relations)
            state = await saga.run()
            return state["task"]

        outcome = await run_atomic_or_saga(
            self.actions,
            "create_task_full",
            {**payload, "assignees": _assignee_payload(assignees), "tags": tags},
            fallback,
            self.settings,
        )
        return outcome.data

    async def _create_task_item(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create a task in the resolved task block."""
        block_lookup = run.resolver.resolve_container(
            "task", args.get("task_block_id"), args.get("task_block_name"), TASK_BLOCK_CONTENT
        )
        task_block_id, assignees = await gather_all(
            block_lookup, self._resolve_assignees(args.get("assignees"), run)
        )
        if not task_block_id:
            raise ToolValidationError(
                "Missing task_block_id and could not resolve one from context. "
                "Provide task_block_id or task_block_name."
            )

        payload = {"task_block_id": task_block_id, **pick(args, *TASK_FIELDS)}
        data = await self._create_one_task(payload, assignees, string_list(args.get("tags")), run)
        return ToolResult(success=True, data=data)

    async def _bulk_create_tasks(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create several tasks in one block; failures are reported per task."""
        tasks = [task for task in args.get("tasks") or [] if isinstance(task, dict)]
        if not tasks:
            raise ToolValidationError("bulk_create_tasks requires a non-empty tasks array.")
        missing_titles = [index for index, task in enumerate(tasks) if not task.get("title")]
        if missing_titles:
            raise ToolValidationError(f"Tasks at index {missing_titles} are missing a title.")

        task_block_id = await run.resolver.resolve_container(
            "task", args.get("task_block_id"), args.get("task_block_name"), TASK_BLOCK_CONTENT
        )
        if not task_block_id:
            raise ToolValidationError("Missing task_block_id and could not resolve one from context.")

        resolutions: List[AssigneeResolution] = await gather_all(
            *(run.resolver.resolve_assignees(_validate_assignee_entries(task.get("assignees"))) for task in tasks)
        )
        ambiguities = [ambiguity for resolution in resolutions for ambiguity in resolution.ambiguities]
        if ambiguities:
            raise AmbiguousEntityError(
                format_ambiguity_error(ambiguities),
                candidates=[m.model_dump() for a in ambiguities for m in a.matches],
            )

        created: List[Any] = []
        failures: List[Dict[str, Any]] = []
        for index, (task, resolution) in enumerate(zip(tasks, resolutions)):
            payload = {"task_block_id": task.get("task_block_id") or task_block_id, **pick(task, *TASK_FIELDS)}
            try:
                created.append(
                    await self._create_one_task(payload, resolution.resolved, string_list(task.get("tags")), run)
                )
            except ToolError as e:
                logger.warning(f"bulk_create_tasks: task {index} failed: {e.message}")
                failures.append({"index": index, "title": task.get("title"), "error": e.message})

        if not created:
            return ToolResult(
                success=False,
                error=f"Failed to create all {len(tasks)} task(s): {failures[0]['error']}",
                error_type="execution_error",
                data={"failures": failures},
            )

        data = {
            "created_count": len(created),
            "created_task_ids": [task.get("id") for task in created if isinstance(task, dict)],
            "tasks": created,
            "failures": failures,
        }
        warnings = [f'Task "{f["title"]}" (index {f["index"]}) failed: {f["error"]}' for f in failures]
        return ToolResult(
            success=True,
            data=data,
            warnings=warnings,
            hint=f"Created {len(created)} of {len(tasks)} task(s).",
        )

    async def _update_task_item(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Update a task; ``assignees``/``tags`` replace the current values when present."""
        task_id = args.get("task_id")
        if not task_id and args.get("lookup_name"):
            resolution = await run.resolver.resolve_by_name("tasks", args["lookup_name"])
            task_id = require_resolved(resolution, "task").id
        if not task_id:
            raise ToolValidationError("Missing task_id or a valid lookup_name.")

        updates = pick(args, *TASK_FIELDS)
        assignees_set = "assignees" in args and args["assignees"] is not None
        tags_set = "tags" in args and args["tags"] is not None
        if not (updates or assignees_set or tags_set):
            raise ToolValidationError("update_task_item needs at least one field to change.")

        assignees = await self._resolve_assignees(args.get("assignees"), run) if assignees_set else []
        tags = string_list(args.get("tags"))

        async def fallback() -> Any:
            data: Any = {"id": task_id}
            if updates:
                data = (await self.actions.update("tasks", task_id, updates)).unwrap("tasks.update")
            writes = []
            if assignees_set:
                writes.append(self.actions.invoke(
                    "tasks.set_assignees",
                    {"task_id": task_id, "assignees": _assignee_payload(assignees), "replace_existing": True},
                ))
            if tags_set:
                writes.append(self.actions.invoke("tasks.set_tags", {"task_id": task_id, "tag_names": tags}))
            for result in await asyncio.gather(*writes):
                result.unwrap("tasks.link_relations")
            return data

        outcome = await run_atomic_or_saga(
            self.actions,
            "update_task_full",
            {
                "task_id": task_id,
                "updates": updates,
                "assignees": _assignee_payload(assignees),
                "assignees_set": assignees_set,
                "tags": tags,
                "tags_set": tags_set,
            },
            fallback,
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)

    async def _bulk_update_task_items(self, args: Dict, run: ExecutionRun) -> ToolResult:
        task_ids = string_list(args.get("task_ids"))
        if not task_ids:
            raise ToolValidationError("bulk_update_task_items requires a non-empty task_ids array.")
        updates = pick(args.get("updates") or {}, *TASK_FIELDS)
        if not updates:
            raise ToolValidationError("bulk_update_task_items requires at least one update.")

        params = {"task_ids": task_ids, "updates": updates}
        outcome = await run_atomic_or_saga(
            self.actions,
            "bulk_update_task_items",
            params,
            lambda: self._unwrapped("tasks.bulk_update", params),
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)

    async def _bulk_move_task_items(self, args: Dict, run: ExecutionRun) -> ToolResult:
        params = {"task_ids": string_list(args.get("task_ids")), "target_block_id": args["target_block_id"]}
        outcome = await run_atomic_or_saga(
            self.actions,
            "bulk_move_task_items",
            params,
            lambda: self._unwrapped("tasks.bulk_move", params),
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)

    async def _duplicate_tasks_to_block(self, args: Dict, run: ExecutionRun) -> ToolResult:
        params = {
            "task_ids": string_list(args.get("task_ids")),
            "target_block_id": args["target_block_id"],
            "include_assignees": args.get("include_assignees", True),
            "include_tags": args.get("include_tags", True),
        }
        outcome = await run_atomic_or_saga(
            self.actions,
            "duplicate_tasks_to_block",
            params,
            lambda: self._unwrapped("tasks.duplicate", params),
            self.settings,
        )
        return ToolResult(success=True, data=outcome.data)

    async def _unwrapped(self, action: str, params: Dict[str, Any]) -> Any:
        return (await self.actions.invoke(action, params)).unwrap(action)

    async def _create_task_board_from_tasks(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """New task board in a tab with copies of the selected tasks.

        The board block is deleted again when copying the tasks fails.
        """
        tab_id = args.get("tab_id") or run.context.current_tab_id
        if not tab_id:
            raise ToolValidationError("Missing tab_id for create_task_board_from_tasks.")

        task_ids = string_list(args.get("task_ids"))
        selectors = pick(args, "assignee_id", "assignee_name")
        if args.get("source_project_id"):
            selectors["project_id"] = args["source_project_id"]
        if args.get("source_tab_id"):
            selectors["tab_id"] = args["source_tab_id"]
        if selectors:
            limit = args.get("limit") if isinstance(args.get("limit"), int) else 500
            found = await self.actions.search("tasks", limit=limit, **selectors)
            if found.ok:
                task_ids = list(dict.fromkeys(task_ids + [str(task["id"]) for task in found.data or []]))
        if not task_ids:
            raise EntityNotFoundError("No tasks found for create_task_board_from_tasks.")

        content = {
            **TASK_BLOCK_CONTENT,
            "title": args.get("title") or "Task Board",
            "view_mode": args.get("view_mode") or "board",
            "board_group_by": args.get("board_group_by") or "status",
        }

        async def create_board(state: Dict[str, Any]) -> Dict[str, Any]:
            created = await self.actions.create("blocks", {"tab_id": tab_id, "type": "task", "content": content})
            return created.unwrap("blocks.create")

        async def delete_board(state: Dict[str, Any]) -> None:
            await self.actions.delete("blocks", state["board"]["id"])

        async def copy_tasks(state: Dict[str, Any]) -> Dict[str, Any]:
            return await self._unwrapped("tasks.duplicate", {
                "task_ids": task_ids,
                "target_block_id": state["board"]["id"],
                "include_assignees": args.get("include_assignees", True),
                "include_tags": args.get("include_tags", True),
            })

        saga = Saga("create_task_board_from_tasks")
        saga.add_step("board", create_board, compensate=delete_board)
        saga.add_step("copies", copy_tasks)
        state = await saga.run()

        copies = state["copies"] or {}
        return ToolResult(success=True, data={
            "task_block_id": state["board"]["id"],
            "created_count": copies.get("created_count"),
            "created_task_ids": copies.get("created_task_ids") or [],
            "skipped": copies.get("skipped"),
        })

    async def _delete_task_item(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("tasks", args["task_id"]))

    async def _set_task_assignees(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Replace the assignees of one task."""
        if not isinstance(args.get("assignees"), list):
            raise ToolValidationError("set_task_assignees requires an assignees array.")
        assignees = await self._resolve_assignees(args["assignees"], run)
        return await self._call("tasks.set_assignees", {
            "task_id": args["task_id"],
            "assignees": _assignee_payload(assignees),
            "replace_existing": True,
        })

    async def _bulk_set_task_assignees(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Replace the assignees of several tasks; the fallback reports per-task failures."""
        task_ids = string_list(args.get("task_ids"))
        if not task_ids:
            raise ToolValidationError("bulk_set_task_assignees requires at least one task id.")
        if not isinstance(args.get("assignees"), list):
            raise ToolValidationError("bulk_set_task_assignees requires an assignees array.")
        assignees = _assignee_payload(await self._resolve_assignees(args["assignees"], run))

        async def fallback() -> Dict[str, Any]:
            failures = []
            for task_id in task_ids:
                result = await self.actions.invoke(
                    "tasks.set_assignees",
                    {"task_id": task_id, "assignees": assignees, "replace_existing": True},
                )
                if not result.ok:
                    failures.append({"task_id": task_id, "error": result.error})
            return {"updated_count": len(task_ids) - len(failures), "failures": failures}

        outcome = await run_atomic_or_saga(
            self.actions,
            "bulk_set_task_assignees",
            {"task_ids": task_ids, "assignees": assignees},
            fallback,
            self.settings,
        )
        failures = (outcome.data or {}).get("failures") if isinstance(outcome.data, dict) else None
        if failures:
            return ToolResult(
                success=False,
                error=f"Failed to update {len(failures)} task(s).",
                error_type="execution_error",
                data=outcome.data,
            )
        return ToolResult(success=True, data=outcome.data)

    async def _set_task_tags(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return await self._call("tasks.set_tags", {
            "task_id": args["task_id"],
            "tag_names": string_list(args.get("tag_names")),
        })

    # -------------------------------------------------------------------------
    # Subtasks + comments
    # -------------------------------------------------------------------------

    async def _create_task_subtask(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.create("subtasks", pick(args, "task_id", "title", "completed")))

    async def _update_task_subtask(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.update("subtasks", args["subtask_id"], pick(args, "title", "completed")))

    async def _delete_task_subtask(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("subtasks", args["subtask_id"]))

    async def _create_task_comment(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.create("task_comments", pick(args, "task_id", "text")))
