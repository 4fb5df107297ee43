"""Tests for the HTTP data actions adapter."""

import json

import httpx
import pytest

from core.exceptions import DataActionError
from core.identity_context import IdentityContext
from services.data_actions import HttpDataActions


def _adapter(settings, handler, api_key="secret"):
    return HttpDataActions(
        base_url="http://backend.test/api/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
        settings=settings,
    )


class Recorder:
    """MockTransport handler returning canned responses and keeping requests."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"data": {"ok": True}}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


class TestInvoke:

    @pytest.mark.asyncio
    async def test_posts_action_payload(self, settings):
        recorder = Recorder(body={"data": {"id": "task-1"}})
        actions = _adapter(settings, recorder)

        result = await actions.create("tasks", {"title": "Book venue"})

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://backend.test/api/actions/tasks.create"
        assert request.headers["Authorization"] == "Bearer secret"
        assert recorder.last_json == {"title": "Book venue"}
        assert result.ok
        assert result.data == {"id": "task-1"}

    @pytest.mark.asyncio
    async def test_update_and_search_shapes(self, settings):
        recorder = Recorder(body={"data": []})
        actions = _adapter(settings, recorder, api_key="")

        await actions.update("projects", "p1", {"name": "Launch"})
        assert recorder.last_json == {"id": "p1", "updates": {"name": "Launch"}}

        await actions.search("clients", search_text="acme", limit=None)
        assert str(recorder.requests[-1].url).endswith("/actions/clients.search")
        assert recorder.last_json == {"search_text": "acme"}
        assert "Authorization" not in recorder.requests[-1].headers

    @pytest.mark.asyncio
    async def test_error_status_uses_body_message(self, settings):
        actions = _adapter(settings, Recorder(status_code=400, body={"error": "Project limit reached"}))

        result = await actions.create("projects", {"name": "Launch"})

        assert not result.ok
        assert result.error == "Project limit reached"
        with pytest.raises(DataActionError) as exc_info:
            result.unwrap("projects.create")
        assert exc_info.value.action == "projects.create"

    @pytest.mark.asyncio
    async def test_error_status_without_body(self, settings):
        actions = _adapter(settings, lambda request: httpx.Response(500, text="upstream crashed"))

        result = await actions.invoke("tasks.create", {})

        assert result.error == "Data action /actions/tasks.create returned HTTP 500"

    @pytest.mark.asyncio
    async def test_error_in_success_body(self, settings):
        actions = _adapter(settings, Recorder(body={"error": "Task block not found"}))

        result = await actions.invoke("tasks.create", {})

        assert result.error == "Task block not found"

    @pytest.mark.asyncio
    async def test_transport_failure(self, settings):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _adapter(settings, refuse).invoke("tasks.search", {})

        assert result.error.startswith("Data action request failed")


class TestRpc:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [404, 501])
    async def test_missing_rpc_is_unavailable(self, settings, status_code):
        actions = _adapter(settings, Recorder(status_code=status_code, body={"error": "not found"}))

        result = await actions.rpc("create_task_full", {})

        assert result.unavailable is True
        assert not result.ok

    @pytest.mark.asyncio
    async def test_rpc_path(self, settings):
        recorder = Recorder(body={"data": {"table_id": "t1"}})

        result = await _adapter(settings, recorder).rpc("create_table_full", {"title": "Leads"})

        assert str(recorder.requests[0].url) == "http://backend.test/api/rpc/create_table_full"
        assert result.data == {"table_id": "t1"}


class TestRawRows:

    @pytest.mark.asyncio
    async def test_raw_row_endpoints(self, settings):
        recorder = Recorder(body={"data": []})
        actions = _adapter(settings, recorder)

        await actions.fetch_rows("task_items", "id", ["a"])
        await actions.upsert_rows("task_items", [{"id": "a"}], on_conflict="id")
        await actions.delete_rows("task_items", where={"task_id": "a"})

        paths = [request.url.path for request in recorder.requests]
        assert paths == ["/api/rows/select", "/api/rows/upsert", "/api/rows/delete"]
        assert recorder.last_json == {"table": "task_items", "ids": None, "id_column": "id", "where": {"task_id": "a"}}

    @pytest.mark.asyncio
    async def test_table_fields_parsed(self, settings):
        body = {"data": {"table": {"id": "t1"}, "fields": [{"id": "f1", "name": "Name", "type": "text", "is_primary": True}]}}

        fields = await _adapter(settings, Recorder(body=body)).get_table_fields("t1")

        assert fields[0].name == "Name"
        assert fields[0].is_primary is True


@pytest.mark.asyncio
async def test_identity_headers_only_inside_scope(settings):
    recorder = Recorder()
    actions = _adapter(settings, recorder)

    async with IdentityContext("ws-1", "user-1"):
        await actions.invoke("tasks.search", {})
    await actions.invoke("tasks.search", {})

    assert recorder.requests[0].headers["X-Test-Workspace-Id"] == "ws-1"
    assert recorder.requests[0].headers["X-Test-User-Id"] == "user-1"
    assert "X-Test-Workspace-Id" not in recorder.requests[1].headers
