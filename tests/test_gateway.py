"""Tests for tool listing and dispatch."""

import json

import httpx
import pytest

from openapi_mcp_gateway.access_log import ToolLogger
from openapi_mcp_gateway.exceptions import (
    SessionNotFoundError,
    ToolAccessDeniedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from openapi_mcp_gateway.gateway import DispatchGateway, build_request
from openapi_mcp_gateway.models import ExecutionParameter, ToolDefinition
from openapi_mcp_gateway.sessions import SessionManager, SessionRegistry, TokenValidator

from conftest import BASE_URL, upstream_handler


class Upstream:
    """Mock upstream that remembers the requests it served."""

    def __init__(self, handler=upstream_handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.handler(request)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def make_gateway(catalog, client, **kwargs):
    sessions = SessionManager(
        SessionRegistry(),
        TokenValidator(BASE_URL, httpx.AsyncClient(transport=httpx.MockTransport(upstream_handler))),
        catalog.resolve_category,
    )
    return DispatchGateway(catalog, sessions, client, base_url=BASE_URL, **kwargs)


async def open_session(gateway, category=None):
    session = await gateway.sessions.initialize(
        gateway.sessions.open_channel(), "Bearer good-token", "pytest", category
    )
    return session.session_id


@pytest.mark.asyncio
async def test_list_tools_by_category(catalog, upstream_client):
    gateway = make_gateway(catalog, upstream_client)

    readonly = gateway.list_tools(await open_session(gateway, "readonly"))
    operator = gateway.list_tools(await open_session(gateway, "operator"))
    everything = gateway.list_tools(await open_session(gateway))

    assert [tool["name"] for tool in readonly] == ["getWidgetsById"]
    assert set(readonly[0]) == {"name", "description", "inputSchema"}
    assert sorted(tool["name"] for tool in operator) == ["createWidget", "deleteWidget", "getWidgetsById"]
    assert sorted(tool["name"] for tool in everything) == ["createWidget", "deleteWidget", "getWidgetsById"]


@pytest.mark.asyncio
async def test_call_tool(catalog):
    upstream = Upstream()
    gateway = make_gateway(catalog, upstream.client())
    session_id = await open_session(gateway, "readonly")

    result = await gateway.call_tool(session_id, "getWidgetsById", {"id": 42, "expand": True})

    assert result == {
        "content": [{"type": "text", "text": json.dumps({"id": 42, "name": "sprocket"}, indent=2)}]
    }
    request = upstream.requests[0]
    assert request.method == "GET"
    assert str(request.url) == f"{BASE_URL}/widgets/42?expand=true"
    assert request.headers["authorization"] == "Bearer good-token"
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_call_is_not_gated_by_category(catalog, upstream_client):
    """A tool hidden from the session's listing can still be called by name."""
    gateway = make_gateway(catalog, upstream_client)
    session_id = await open_session(gateway, "readonly")

    result = await gateway.call_tool(session_id, "deleteWidget", {"id": 42})

    assert json.loads(result["content"][0]["text"]) == {"deleted": True}


@pytest.mark.asyncio
async def test_enforced_category_rejects_call(catalog, upstream_client):
    gateway = make_gateway(catalog, upstream_client, enforce_category_on_call=True)
    session_id = await open_session(gateway, "readonly")

    with pytest.raises(ToolAccessDeniedError):
        await gateway.call_tool(session_id, "deleteWidget", {"id": 42})


@pytest.mark.asyncio
async def test_call_with_body(catalog):
    upstream = Upstream()
    gateway = make_gateway(catalog, upstream.client())
    session_id = await open_session(gateway, "operator")

    result = await gateway.call_tool(session_id, "createWidget", {"requestBody": {"name": "gear"}})

    assert json.loads(result["content"][0]["text"]) == {"name": "gear"}
    request = upstream.requests[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"name": "gear"}


@pytest.mark.asyncio
async def test_upstream_error_status(catalog, upstream_client):
    gateway = make_gateway(catalog, upstream_client)
    session_id = await open_session(gateway)

    with pytest.raises(ToolExecutionError) as excinfo:
        await gateway.call_tool(session_id, "getWidgetsById", {"id": 7})

    assert excinfo.value.status == 404
    assert excinfo.value.body == {"detail": "Not found."}
    assert str(excinfo.value) == 'Tool execution failed: HTTP 404: {"detail": "Not found."}'


@pytest.mark.asyncio
async def test_upstream_unreachable(catalog, tmp_path):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    tool_logger = ToolLogger(tmp_path)
    gateway = make_gateway(
        catalog, httpx.AsyncClient(transport=httpx.MockTransport(handler)), tool_logger=tool_logger
    )
    session_id = await open_session(gateway)

    with pytest.raises(ToolExecutionError, match="Tool execution failed: connection refused") as excinfo:
        await gateway.call_tool(session_id, "getWidgetsById", {"id": 42})

    assert excinfo.value.status == 0
    entries = tool_logger.read_entries("getWidgetsById")
    assert len(entries) == 1
    assert entries[0].return_code == 0


@pytest.mark.asyncio
async def test_text_response(catalog):
    upstream = Upstream(lambda request: httpx.Response(200, text="plain answer"))
    gateway = make_gateway(catalog, upstream.client())
    session_id = await open_session(gateway)

    result = await gateway.call_tool(session_id, "getWidgetsById", {"id": 42})

    assert result["content"][0]["text"] == "plain answer"


@pytest.mark.asyncio
async def test_calls_are_recorded_once(catalog, upstream_client, tmp_path):
    tool_logger = ToolLogger(tmp_path)
    gateway = make_gateway(catalog, upstream_client, tool_logger=tool_logger)
    session_id = await open_session(gateway, "readonly")

    await gateway.call_tool(session_id, "getWidgetsById", {"id": 42, "expand": False})
    with pytest.raises(ToolExecutionError):
        await gateway.call_tool(session_id, "getWidgetsById", {"id": 7})

    entries = tool_logger.read_entries("getWidgetsById")
    assert [entry.return_code for entry in entries] == [200, 404]
    assert entries[0].endpoint == f"{BASE_URL}/widgets/42?expand=false"
    assert entries[0].response == {"id": 42, "name": "sprocket"}
    assert entries[0].payload["method"] == "GET"
    assert entries[0].payload["userAgent"] == "pytest"
    assert entries[0].payload["category"] == "readonly"
    assert entries[0].payload["service"] == "widgets"


@pytest.mark.asyncio
async def test_unknown_tool(catalog, upstream_client):
    gateway = make_gateway(catalog, upstream_client)
    session_id = await open_session(gateway)

    with pytest.raises(ToolNotFoundError, match="Unknown tool: nope"):
        await gateway.call_tool(session_id, "nope", {})


@pytest.mark.asyncio
async def test_invalid_session(catalog, upstream_client):
    gateway = make_gateway(catalog, upstream_client)

    with pytest.raises(SessionNotFoundError):
        gateway.list_tools("missing")
    with pytest.raises(SessionNotFoundError):
        await gateway.call_tool("missing", "getWidgetsById", {"id": 42})


def test_build_request():
    tool = ToolDefinition(
        name="updateFile",
        method="put",
        path_template="/files/{path}",
        execution_parameters=[
            ExecutionParameter(name="path", location="path"),
            ExecutionParameter(name="tag", location="query"),
            ExecutionParameter(name="dry_run", location="query"),
            ExecutionParameter(name="X-Request-Id", location="header"),
        ],
        request_body_content_type="text/plain",
    )

    path, query, headers, body = build_request(
        tool,
        {
            "path": "a/b c",
            "tag": ["x", "y"],
            "dry_run": None,
            "X-Request-Id": 7,
            "requestBody": "hello",
        },
        "tok",
    )

    assert path == "/files/a%2Fb%20c"
    assert query == [("tag", "x"), ("tag", "y")]
    assert headers["Authorization"] == "Bearer tok"
    assert headers["X-Request-Id"] == "7"
    assert headers["Content-Type"] == "text/plain"
    assert body == b"hello"


def test_build_request_ignores_body_on_get():
    tool = ToolDefinition(name="t", method="get", path_template="/t")

    _, query, headers, body = build_request(tool, {"requestBody": {"a": 1}}, "tok")

    assert query == []
    assert body is None
    assert "Content-Type" not in headers
