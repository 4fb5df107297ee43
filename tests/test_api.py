"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from core.app import create_app
from core.dependencies import get_app_settings, get_data_actions
from services.tool_catalog import CORE_TOOL_NAMES

from conftest import TAB_ID, WORKSPACE_ID

CONTEXT = {"workspace_id": WORKSPACE_ID, "current_tab_id": TAB_ID}


@pytest.fixture
def client(settings, backend):
    app = create_app(settings)
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_data_actions] = lambda: backend
    with TestClient(app) as test_client:
        yield test_client


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["docs"] == "/api/v1/docs"
    assert "X-Process-Time" in response.headers


def test_health(client):
    response = client.get("/api/v1/assistant/health")

    assert response.status_code == 200
    assert response.json()["services"]["tool_catalog"] == "ok"


class TestToolList:

    def test_core_tools_by_default(self, client):
        body = client.get("/api/v1/assistant/tools").json()

        assert body["format"] == "catalog"
        assert body["count"] == len(CORE_TOOL_NAMES)
        assert {tool["name"] for tool in body["tools"]} == set(CORE_TOOL_NAMES)

    def test_groups_and_format(self, client):
        body = client.get("/api/v1/assistant/tools", params={"groups": "table, task", "format": "anthropic"}).json()

        names = {tool["name"] for tool in body["tools"]}
        assert {"bulk_insert_rows", "create_task_item"} <= names
        assert all("input_schema" in tool for tool in body["tools"])

    def test_prompt_format_returns_text(self, client):
        body = client.get("/api/v1/assistant/tools", params={"format": "prompt"}).json()

        assert body["tools"][0].startswith("Tool: ")

    def test_unknown_format(self, client):
        response = client.get("/api/v1/assistant/tools", params={"format": "xml"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Unknown tool format 'xml'")


class TestExecute:

    def test_execute_tool(self, client, backend):
        response = client.post(
            "/api/v1/assistant/tools/execute",
            json={"call": {"name": "create_client", "arguments": {"name": "Acme"}}, "context": CONTEXT},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["success"] is True
        assert body["result"]["data"]["name"] == "Acme"
        assert body["undo"] is None
        assert len(backend.collection("clients")) == 1

    def test_failed_tool_is_still_200(self, client):
        response = client.post(
            "/api/v1/assistant/tools/execute",
            json={"call": {"name": "create_client", "arguments": {}}, "context": CONTEXT},
        )

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is False
        assert result["error_type"] == "validation"
        assert result["recovery_strategy"] == "clarify"

    def test_failed_bulk_create_lists_each_failure(self, client, backend):
        backend.failures["tasks.create"] = "Quota exceeded"

        response = client.post(
            "/api/v1/assistant/tools/execute",
            json={
                "call": {"name": "bulk_create_tasks", "arguments": {"tasks": [{"title": "Draft"}, {"title": "Review"}]}},
                "context": CONTEXT,
            },
        )

        result = response.json()["result"]
        assert result["success"] is False
        assert result["error"] == "Failed to create all 2 task(s): Quota exceeded"
        assert result["data"]["failures"] == [
            {"index": 0, "title": "Draft", "error": "Quota exceeded"},
            {"index": 1, "title": "Review", "error": "Quota exceeded"},
        ]

    def test_capture_then_undo(self, client, backend):
        executed = client.post(
            "/api/v1/assistant/tools/execute",
            json={
                "call": {"name": "create_client", "arguments": {"name": "Acme"}},
                "context": CONTEXT,
                "capture_undo": True,
            },
        ).json()

        batches = executed["undo"]["batches"]
        assert batches[0]["tool_name"] == "create_client"

        undone = client.post("/api/v1/assistant/undo", json={"batches": batches}).json()

        assert undone["applied"] == 1
        assert undone["failed"] == 0
        assert backend.collection("clients") == {}

    def test_batch_parallel(self, client):
        response = client.post(
            "/api/v1/assistant/tools/execute-batch",
            json={
                "calls": [
                    {"name": "create_client", "arguments": {"name": "Acme"}},
                    {"name": "launch_rocket", "arguments": {}},
                ],
                "context": CONTEXT,
                "mode": "parallel",
            },
        )

        results = response.json()["results"]
        assert [r["success"] for r in results] == [True, False]
        assert results[1]["error_type"] == "not_found"

    def test_batch_rejects_unknown_mode(self, client):
        response = client.post(
            "/api/v1/assistant/tools/execute-batch",
            json={"calls": [], "mode": "eventually"},
        )

        assert response.status_code == 422
