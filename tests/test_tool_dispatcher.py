"""Tests for ToolDispatcher routing, argument preparation, errors and undo journaling."""

from unittest.mock import AsyncMock

import pytest

from core.exceptions import ToolValidationError
from llm.models import ToolCall, ToolDefinition, ToolRecoveryStrategy
from services.tool_catalog import TOOL_CATALOG
from services.tool_dispatcher import ToolDispatcher, get_tool_counts
from services.undo_capture import apply_undo_batches

from conftest import PROJECT_ID, new_id


class TestRouting:
    """Tool lookup and handler wiring."""

    def test_every_catalog_tool_has_a_handler(self, dispatcher):
        assert set(ToolDispatcher.TOOL_HANDLER_MAP) == set(TOOL_CATALOG)
        for handler_name in ToolDispatcher.TOOL_HANDLER_MAP.values():
            assert callable(getattr(dispatcher, handler_name))

    def test_tool_counts_cover_catalog(self):
        counts = get_tool_counts()
        assert sum(counts.values()) == len(TOOL_CATALOG)
        assert counts["table"] == 17

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher, context):
        result = await dispatcher.execute(ToolCall(name="launch_rocket", arguments={}), context)

        assert result.success is False
        assert result.error_type == "not_found"
        assert "launch_rocket" in result.error

    @pytest.mark.asyncio
    async def test_records_execution_time(self, dispatcher, context):
        result = await dispatcher.execute(
            ToolCall(name="request_tool_groups", arguments={"tool_groups": ["table"], "reason": "needs rows"}),
            context,
        )

        assert result.success is True
        assert result.data == {"tool_groups": ["table"], "reason": "needs rows"}
        assert result.execution_time_ms is not None


class TestArgumentPreparation:
    """Required parameters and stringified JSON arguments."""

    @pytest.mark.asyncio
    async def test_missing_required_parameter_is_validation_error(self, dispatcher, backend, context):
        result = await dispatcher.execute(ToolCall(name="create_project", arguments={}), context)

        assert result.success is False
        assert result.error_type == "validation"
        assert "name" in result.error
        assert result.recovery_strategy == ToolRecoveryStrategy.CLARIFY
        assert backend.calls == []

    def test_missing_names_are_reported_verbatim(self):
        tool = ToolDefinition(
            name="tag_release",
            description="Tag a release",
            category="control",
            parameters={"type": "object", "properties": {}, "required": ["owner's_note", "version", "channel"]},
        )

        with pytest.raises(ToolValidationError) as exc_info:
            ToolDispatcher._prepare_arguments(tool, {"channel": None})

        assert exc_info.value.message == "Missing required parameter(s) for tag_release: owner's_note, version"

    @pytest.mark.asyncio
    async def test_stringified_array_is_repaired(self, dispatcher, backend, context):
        block = backend.add("blocks", type="task", tab_id=context.current_tab_id, content={})
        call = ToolCall(
            name="bulk_create_tasks",
            arguments={"task_block_id": block["id"], "tasks": '[{"title": "Draft brief"}, {"title": "Review"},]'},
        )

        result = await dispatcher.execute(call, context)

        assert result.success is True
        assert result.data["created_count"] == 2
        titles = sorted(task["title"] for task in backend.collection("tasks").values())
        assert titles == ["Draft brief", "Review"]


class TestErrorConversion:
    """Exceptions raised by handlers become failed results."""

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_retryable(self, dispatcher, backend, context):
        backend.invoke = AsyncMock(side_effect=RuntimeError("connection reset"))

        result = await dispatcher.execute(ToolCall(name="search_tasks", arguments={"search_text": "x"}), context)

        assert result.success is False
        assert result.error == "connection reset"
        assert result.error_type == "execution_error"
        assert result.recovery_strategy == ToolRecoveryStrategy.RETRY

    @pytest.mark.asyncio
    async def test_external_failure_is_surfaced_verbatim(self, dispatcher, backend, context):
        backend.failures["projects.create"] = "Project limit reached"

        result = await dispatcher.execute(ToolCall(name="create_project", arguments={"name": "Launch"}), context)

        assert result.success is False
        assert result.error == "Project limit reached"
        assert result.error_type == "execution_error"

    @pytest.mark.asyncio
    async def test_no_workspace_selected(self, dispatcher, context):
        no_workspace = context.model_copy(update={"workspace_id": None})

        result = await dispatcher.execute(ToolCall(name="create_project", arguments={"name": "Launch"}), no_workspace)

        assert result.success is False
        assert result.error == "No workspace selected"


class TestBatches:
    """Sequential and parallel execution."""

    @pytest.mark.asyncio
    async def test_sequential_continues_after_failure(self, dispatcher, backend, context):
        calls = [
            ToolCall(name="create_project", arguments={}),
            ToolCall(name="create_project", arguments={"name": "Second"}),
        ]

        results = await dispatcher.execute_sequentially(calls, context)

        assert [r.success for r in results] == [False, True]
        assert [p["name"] for p in backend.collection("projects").values()] == ["Second"]

    @pytest.mark.asyncio
    async def test_parallel_keeps_input_order(self, dispatcher, context):
        calls = [
            ToolCall(name="create_client", arguments={"name": "Acme"}),
            ToolCall(name="create_client", arguments={"name": "Globex"}),
        ]

        results = await dispatcher.execute_parallel(calls, context)

        assert [r.data["name"] for r in results] == ["Acme", "Globex"]


class TestUndoJournal:
    """Undo batches recorded through the tracker in the execution context."""

    @pytest.mark.asyncio
    async def test_create_records_delete_step(self, dispatcher, backend, undo_context, tracker):
        result = await dispatcher.execute(
            ToolCall(name="create_task_item", arguments={"title": "Write release notes"}), undo_context
        )

        assert result.success is True
        task_id = result.data["id"]
        batch = tracker.batches[-1]
        assert batch.tool_name == "create_task_item"
        assert batch.steps[0].action == "delete"
        assert batch.steps[0].table == "task_items"
        assert batch.steps[0].ids == [task_id]

        outcome = await apply_undo_batches(backend, tracker.batches)
        assert outcome.failed == 0
        assert task_id not in backend.collection("tasks")

    @pytest.mark.asyncio
    async def test_update_records_pre_image(self, dispatcher, backend, undo_context, tracker):
        backend.add("projects", id=PROJECT_ID, name="Old name", status="not_started")

        result = await dispatcher.execute(
            ToolCall(name="update_project", arguments={"project_id": PROJECT_ID, "name": "New name"}), undo_context
        )

        assert result.success is True
        assert backend.collection("projects")[PROJECT_ID]["name"] == "New name"

        await apply_undo_batches(backend, tracker.batches)
        assert backend.collection("projects")[PROJECT_ID]["name"] == "Old name"

    @pytest.mark.asyncio
    async def test_read_tools_are_not_journaled(self, dispatcher, undo_context, tracker):
        await dispatcher.execute(ToolCall(name="search_projects", arguments={}), undo_context)

        assert tracker.batches == []
        assert tracker.skipped_tools == []

    @pytest.mark.asyncio
    async def test_failed_write_records_nothing(self, dispatcher, backend, undo_context, tracker):
        backend.failures["clients.create"] = "boom"

        result = await dispatcher.execute(ToolCall(name="create_client", arguments={"name": "Acme"}), undo_context)

        assert result.success is False
        assert tracker.batches == []

    @pytest.mark.asyncio
    async def test_write_without_reversible_steps_is_skipped(self, dispatcher, undo_context, tracker):
        # Nothing to read back for a row that does not exist yet
        arguments = {"row_id": new_id(), "field_id": new_id(), "value": "x"}
        await dispatcher.execute(ToolCall(name="update_cell", arguments=arguments), undo_context)

        assert tracker.batches == []
        assert tracker.skipped_tools == ["update_cell"]
