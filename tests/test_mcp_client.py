"""Tests for the MCP tool listing client."""
import json

import httpx
import pytest

from gateway_publisher.errors import VendorError
from gateway_publisher.schemas.config_document import MCPTransportConfig, MCPTransportMode
from gateway_publisher.services.mcp_client import MCPClientService, MCPTool, tools_to_manifest

URL = "https://gw.example.com/mcp-servers/weather"

TOOLS = [
    {
        "name": "forecast",
        "description": "Weather forecast",
        "inputSchema": {
            "type": "object",
            "properties": {"city": {"type": "string", "description": "City name"}, "days": {"type": "integer"}},
            "required": ["city"],
        },
    },
    {"description": "nameless tools are dropped"},
]


class McpServer:
    """initialize + tools/list over JSON or SSE framing."""

    def __init__(self, sse: bool = False, tools_status: int = 200):
        self.sse = sse
        self.tools_status = tools_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        rpc = json.loads(request.content)
        if rpc["method"] == "initialize":
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": rpc["id"], "result": {"protocolVersion": "2024-11-05"}},
                headers={"Mcp-Session-Id": "session-1"},
            )
        if self.tools_status != 200:
            return httpx.Response(self.tools_status, json={})
        reply = {"jsonrpc": "2.0", "id": rpc["id"], "result": {"tools": TOOLS}}
        if self.sse:
            return httpx.Response(
                200,
                text=f"event: message\ndata: {json.dumps(reply)}\n\n",
                headers={"content-type": "text/event-stream"},
            )
        return httpx.Response(200, json=reply)


def _transport(mode=MCPTransportMode.STREAMABLE_HTTP) -> MCPTransportConfig:
    return MCPTransportConfig(mcp_server_name="weather", transport_mode=mode, url=URL)


class TestListTools:

    @pytest.mark.asyncio
    async def test_json_reply(self):
        server = McpServer()
        client = MCPClientService(timeout=5, transport=httpx.MockTransport(server))

        tools = await client.list_tools(_transport(), headers={"Authorization": "Bearer k"}, query_params={"t": "1"})

        assert [t.name for t in tools] == ["forecast"]
        assert tools[0].input_schema["required"] == ["city"]
        initialize, listing = server.requests
        assert json.loads(initialize.content)["method"] == "initialize"
        assert listing.headers["Mcp-Session-Id"] == "session-1"
        assert listing.headers["Authorization"] == "Bearer k"
        assert listing.url.params["t"] == "1"

    @pytest.mark.asyncio
    async def test_sse_framed_reply(self):
        server = McpServer(sse=True)
        client = MCPClientService(timeout=5, transport=httpx.MockTransport(server))

        tools = await client.list_tools(_transport(MCPTransportMode.SSE))

        assert [t.name for t in tools] == ["forecast"]

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = MCPClientService(timeout=5, transport=httpx.MockTransport(McpServer(tools_status=401)))

        with pytest.raises(VendorError) as exc_info:
            await client.list_tools(_transport())

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = MCPClientService(timeout=5, transport=httpx.MockTransport(refuse))

        with pytest.raises(VendorError) as exc_info:
            await client.list_tools(_transport())

        assert "unreachable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_html_reply_is_a_vendor_error(self):
        def login_page(request):
            return httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})

        client = MCPClientService(timeout=5, transport=httpx.MockTransport(login_page))

        with pytest.raises(VendorError) as exc_info:
            await client.list_tools(_transport())

        assert "non JSON-RPC" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_null_result_lists_no_tools(self):
        def null_result(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": None})

        client = MCPClientService(timeout=5, transport=httpx.MockTransport(null_result))

        assert await client.list_tools(_transport()) == []


class TestManifest:

    def test_manifest_lists_args(self):
        tool = MCPTool(name="forecast", description="Weather forecast", input_schema=TOOLS[0]["inputSchema"])

        manifest = json.loads(tools_to_manifest("weather", [tool]))

        assert manifest["server"] == {"name": "weather"}
        assert manifest["tools"][0]["args"] == [
            {"name": "city", "required": True, "description": "City name", "type": "string"},
            {"name": "days", "required": False, "type": "integer"},
        ]

    def test_no_tools(self):
        assert tools_to_manifest("weather", []) is None
