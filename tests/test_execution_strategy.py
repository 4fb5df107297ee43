"""Tests for the saga runner and the atomic-or-saga strategy."""

import logging

import pytest

from core.exceptions import DataActionError
from services.execution_strategy import Saga, run_atomic_or_saga


class TestSaga:

    @pytest.mark.asyncio
    async def test_steps_share_state(self):
        async def first(state):
            return 1

        async def second(state):
            return state["first"] + 1

        state = await Saga("count").add_step("first", first).add_step("second", second).run()

        assert state == {"first": 1, "second": 2}

    @pytest.mark.asyncio
    async def test_compensates_in_reverse_and_reraises(self):
        undone = []

        async def step(state):
            return "ok"

        def undo(name):
            async def compensate(state):
                undone.append(name)
            return compensate

        async def explode(state):
            raise DataActionError("blocks.create", "Tab is locked")

        saga = (
            Saga("create")
            .add_step("a", step, compensate=undo("a"))
            .add_step("b", step)
            .add_step("c", step, compensate=undo("c"))
            .add_step("d", explode, compensate=undo("d"))
        )

        with pytest.raises(DataActionError) as exc_info:
            await saga.run()

        assert exc_info.value.message == "Tab is locked"
        assert undone == ["c", "a"]

    @pytest.mark.asyncio
    async def test_compensation_failure_is_logged_not_raised(self, caplog):
        undone = []

        async def step(state):
            return "ok"

        async def broken_undo(state):
            raise RuntimeError("delete failed")

        async def undo_first(state):
            undone.append("first")

        async def explode(state):
            raise ValueError("step failed")

        saga = (
            Saga("create")
            .add_step("first", step, compensate=undo_first)
            .add_step("second", step, compensate=broken_undo)
            .add_step("third", explode)
        )

        with caplog.at_level(logging.WARNING, logger="services.execution_strategy"):
            with pytest.raises(ValueError, match="step failed"):
                await saga.run()

        assert undone == ["first"]
        assert "Compensation for create.second failed: delete failed" in caplog.text


class TestAtomicOrSaga:

    @pytest.mark.asyncio
    async def test_atomic_result_used(self, backend, settings):
        backend.rpcs["create_task_full"] = lambda params: {"id": "task-1"}

        async def fallback():
            raise AssertionError("fallback should not run")

        outcome = await run_atomic_or_saga(backend, "create_task_full", {"title": "x"}, fallback, settings)

        assert outcome.strategy == "atomic"
        assert outcome.data == {"id": "task-1"}

    @pytest.mark.asyncio
    async def test_unavailable_rpc_falls_back(self, backend, settings):
        async def fallback():
            return {"id": "task-2"}

        outcome = await run_atomic_or_saga(backend, "create_task_full", {}, fallback, settings)

        assert outcome.strategy == "saga"
        assert outcome.data == {"id": "task-2"}
        assert backend.rpc_calls == [("create_task_full", {})]

    @pytest.mark.asyncio
    async def test_rpc_raising_falls_back(self, backend, settings):
        def broken(params):
            raise RuntimeError("rpc crashed")

        backend.rpcs["create_task_full"] = broken

        async def fallback():
            return "fallback"

        outcome = await run_atomic_or_saga(backend, "create_task_full", {}, fallback, settings)

        assert outcome.data == "fallback"

    @pytest.mark.asyncio
    async def test_atomic_disabled(self, backend, settings):
        backend.rpcs["create_task_full"] = lambda params: {"id": "task-1"}

        async def fallback():
            return "fallback"

        outcome = await run_atomic_or_saga(backend, "create_task_full", {}, fallback, settings, use_atomic=False)

        assert outcome.strategy == "saga"
        assert backend.rpc_calls == []

    @pytest.mark.asyncio
    async def test_setting_turns_off_rpcs(self, backend):
        from core.config import Settings

        backend.rpcs["create_task_full"] = lambda params: {"id": "task-1"}
        no_rpc = Settings(_env_file=None, PREFER_ATOMIC_RPC=False)

        async def fallback():
            return "fallback"

        outcome = await run_atomic_or_saga(backend, "create_task_full", {}, fallback, no_rpc)

        assert outcome.data == "fallback"
