"""Tests for task tools: block resolution, assignees and the create saga."""

import asyncio

import pytest

from core.exceptions import ToolValidationError
from llm.models import ToolCall, ToolRecoveryStrategy
from services.entity_resolver import TASK_BLOCK_CONTENT
from services.handlers.base import gather_all

from conftest import TAB_ID


async def _run(dispatcher, context, tool_name, **arguments):
    return await dispatcher.execute(ToolCall(name=tool_name, arguments=arguments), context)


@pytest.fixture
def team(backend):
    return {
        "riley": backend.add_member("Riley Chen", "riley@example.com"),
        "jordan_lee": backend.add_member("Jordan Lee", "jlee@example.com"),
        "jordan_park": backend.add_member("Jordan Park", "jpark@example.com"),
    }


class TestCreateTaskItem:
    """create_task_item."""

    @pytest.mark.asyncio
    async def test_creates_task_block_in_current_tab(self, dispatcher, backend, context):
        result = await _run(dispatcher, context, "create_task_item", title="Book venue")

        assert result.success is True
        blocks = list(backend.collection("blocks").values())
        assert len(blocks) == 1
        assert blocks[0]["tab_id"] == TAB_ID
        assert blocks[0]["type"] == "task"
        assert blocks[0]["content"] == TASK_BLOCK_CONTENT
        assert result.data["task_block_id"] == blocks[0]["id"]

    @pytest.mark.asyncio
    async def test_existing_task_block_is_reused(self, dispatcher, backend, context):
        block = backend.add("blocks", type="task", tab_id=TAB_ID, content={})

        result = await _run(dispatcher, context, "create_task_item", title="Book venue")

        assert result.data["task_block_id"] == block["id"]
        assert len(backend.collection("blocks")) == 1

    @pytest.mark.asyncio
    async def test_assignees_resolved_by_name(self, dispatcher, backend, context, team):
        result = await _run(
            dispatcher, context, "create_task_item",
            title="Book venue",
            assignees=["Riley", "Sam Contractor"],
        )

        assert result.success is True
        assert backend.assignees[result.data["id"]] == [
            {"id": team["riley"]["user_id"], "name": "Riley Chen"},
            {"name": "Sam Contractor"},
        ]

    @pytest.mark.asyncio
    async def test_ambiguous_assignee_creates_nothing(self, dispatcher, backend, context, team):
        result = await _run(dispatcher, context, "create_task_item", title="Book venue", assignees=["Jordan"])

        assert result.success is False
        assert result.error_type == "ambiguous"
        assert result.recovery_strategy == ToolRecoveryStrategy.CLARIFY
        assert '"Jordan" matches 2 candidates' in result.error
        assert "jlee@example.com" in result.error
        assert backend.collection("tasks") == {}

    @pytest.mark.asyncio
    async def test_failed_linking_deletes_the_task(self, dispatcher, backend, context):
        backend.failures["tasks.set_tags"] = "Tag service down"

        result = await _run(dispatcher, context, "create_task_item", title="Book venue", tags=["events"])

        assert result.success is False
        assert result.error == "Tag service down"
        assert backend.collection("tasks") == {}

    @pytest.mark.asyncio
    async def test_member_lookup_failure_is_reported(self, dispatcher, backend, context):
        backend.failures["members.search"] = "Directory offline"

        result = await _run(dispatcher, context, "create_task_item", title="Book venue", assignees=["Riley"])

        assert result.success is False
        assert result.error == "Directory offline"
        assert result.error_type == "execution_error"
        assert "blocks.search" in backend.actions_called()
        assert backend.collection("tasks") == {}

    @pytest.mark.asyncio
    async def test_atomic_rpc_used_when_available(self, dispatcher, backend, context):
        backend.rpcs["create_task_full"] = lambda params: {"id": "task-1", "title": params["title"]}

        result = await _run(dispatcher, context, "create_task_item", title="Book venue", tags=["events"])

        assert result.success is True
        assert result.data == {"id": "task-1", "title": "Book venue"}
        assert backend.rpc_calls[0][1]["tags"] == ["events"]
        assert "tasks.create" not in backend.actions_called()


class TestBulkCreateTasks:
    """bulk_create_tasks."""

    @pytest.mark.asyncio
    async def test_one_ambiguous_name_aborts_the_batch(self, dispatcher, backend, context, team):
        result = await _run(
            dispatcher, context, "bulk_create_tasks",
            tasks=[{"title": "Book venue", "assignees": ["Riley"]}, {"title": "Send invites", "assignees": ["Jordan"]}],
        )

        assert result.success is False
        assert result.error_type == "ambiguous"
        assert backend.collection("tasks") == {}

    @pytest.mark.asyncio
    async def test_titles_are_required(self, dispatcher, context):
        result = await _run(dispatcher, context, "bulk_create_tasks", tasks=[{"title": "Book venue"}, {"status": "todo"}])

        assert result.success is False
        assert result.error == "Tasks at index [1] are missing a title."

    @pytest.mark.asyncio
    async def test_shares_one_task_block(self, dispatcher, backend, context):
        result = await _run(
            dispatcher, context, "bulk_create_tasks",
            tasks=[{"title": "Book venue"}, {"title": "Send invites"}, {"title": "Order catering"}],
        )

        assert result.success is True
        assert result.data["created_count"] == 3
        assert result.hint == "Created 3 of 3 task(s)."
        assert len(backend.collection("blocks")) == 1
        assert len({task["task_block_id"] for task in backend.collection("tasks").values()}) == 1


class TestUpdateTaskItem:
    """update_task_item."""

    @pytest.mark.asyncio
    async def test_lookup_by_name_and_replace_assignees(self, dispatcher, backend, context, team):
        task = backend.add("tasks", title="Book venue", status="todo")

        result = await _run(
            dispatcher, context, "update_task_item",
            lookup_name="book venue",
            status="done",
            assignees=["Riley"],
        )

        assert result.success is True
        assert backend.collection("tasks")[task["id"]]["status"] == "done"
        assert backend.assignees[task["id"]] == [{"id": team["riley"]["user_id"], "name": "Riley Chen"}]
        set_call = next(params for action, params in backend.calls if action == "tasks.set_assignees")
        assert set_call["replace_existing"] is True

    @pytest.mark.asyncio
    async def test_needs_a_change(self, dispatcher, backend, context):
        task = backend.add("tasks", title="Book venue")

        result = await _run(dispatcher, context, "update_task_item", task_id=task["id"])

        assert result.success is False
        assert result.error_type == "validation"

    @pytest.mark.asyncio
    async def test_unknown_lookup_name(self, dispatcher, context):
        result = await _run(dispatcher, context, "update_task_item", lookup_name="Nothing like this", status="done")

        assert result.success is False
        assert result.error_type == "not_found"
        assert result.error == 'No task found matching "Nothing like this".'


class TestGatherAll:
    """Concurrent lookups finish before a failure propagates."""

    @pytest.mark.asyncio
    async def test_siblings_finish_before_error_is_raised(self):
        finished = []

        async def slow_lookup():
            await asyncio.sleep(0.01)
            finished.append("block")
            return "block-1"

        async def failing_lookup():
            raise ToolValidationError("bad assignee")

        with pytest.raises(ToolValidationError, match="bad assignee"):
            await gather_all(slow_lookup(), failing_lookup())

        assert finished == ["block"]

    @pytest.mark.asyncio
    async def test_results_keep_order(self):
        async def value(v):
            return v

        assert await gather_all(value(1), value(2)) == [1, 2]
