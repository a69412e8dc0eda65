"""Tests for the Higress capability against a mocked console."""
import json

import httpx
import pytest

from conftest import _make_definition, _make_gateway
from gateway_publisher.adapters.higress.adapter import HigressCapability
from gateway_publisher.errors import ValidationError, VendorError
from gateway_publisher.models import APIType
from gateway_publisher.schemas.config_document import (
    DomainResult,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
    ModelConfigResult,
)
from gateway_publisher.schemas.consumer import AuthRecord
from gateway_publisher.schemas.deployment import DeploymentOptions, ServiceOptions
from gateway_publisher.schemas.gateway import ResourceKind
from gateway_publisher.services.mcp_client import MCPTool


class Console:
    """Scripted Higress console: ``routes[(method, path)] = (status, body)``."""

    def __init__(self):
        self.routes: dict[tuple[str, str], tuple[int, dict]] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"message": "not found"}))
        return httpx.Response(status, json=body)

    def body_of(self, method: str, path: str) -> dict:
        request = next(r for r in self.requests if r.method == method and r.url.path == path)
        return json.loads(request.content)


class FakeMCPClient:
    def __init__(self, tools):
        self.tools = tools
        self.calls = []

    async def list_tools(self, transport_config, headers=None, query_params=None):
        self.calls.append((transport_config, headers, query_params))
        return self.tools


@pytest.fixture
def console():
    return Console()


@pytest.fixture
def mcp_client():
    return FakeMCPClient([MCPTool(name="forecast", description="Weather forecast")])


@pytest.fixture
def capability(console, mcp_client):
    return HigressCapability(transport=httpx.MockTransport(console), mcp_client=mcp_client)


@pytest.fixture
def gateway():
    return _make_gateway(connection_config={
        "address": "console.local",
        "username": "admin",
        "password": "pw",
        "gateway_address": "http://10.0.0.1:8080",
    })


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_list_mcp_servers(self, capability, console, gateway):
        console.routes[("GET", "/v1/mcpServer")] = (200, {
            "data": [{"name": "weather", "type": "OPEN_API", "description": "Weather"}],
            "total": 1,
        })

        page = await capability.list_resources(gateway, ResourceKind.MCP_SERVER, page=2, size=5)

        assert page.total == 1
        assert page.items[0].resource_ref == {"mcp_server_name": "weather"}
        assert page.items[0].extra == {"type": "OPEN_API"}
        assert console.requests[0].url.params["pageNum"] == "2"
        assert console.requests[0].url.params["pageSize"] == "5"
        assert console.requests[0].headers["authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_list_ai_routes_failure_returns_empty_page(self, capability, console, gateway):
        console.routes[("GET", "/v1/ai/routes")] = (500, {"message": "boom"})

        page = await capability.list_resources(gateway, ResourceKind.MODEL_API)

        assert page.items == []
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_agent_apis_are_empty(self, capability, gateway):
        page = await capability.list_resources(gateway, ResourceKind.AGENT_API)

        assert page.total == 0


class TestResolve:

    @pytest.mark.asyncio
    async def test_mcp_server_with_reported_domain(self, capability, console, gateway):
        console.routes[("GET", "/v1/mcpServer/weather")] = (200, {"data": {
            "name": "weather",
            "type": "OPEN_API",
            "domains": ["api.example.com"],
            "rawConfigurations": "server: weather",
        }})
        console.routes[("GET", "/v1/domains/api.example.com")] = (200, {"data": {"enableHttps": "on"}})

        document = await capability.resolve_config(gateway, {"mcp_server_name": "weather"}, APIType.MCP_SERVER)

        assert isinstance(document, MCPConfigResult)
        assert document.mcp_server_config.path == "/mcp-servers/weather"
        assert document.mcp_server_config.domains == [DomainResult(domain="api.example.com", protocol="https")]
        assert document.tools == "server: weather"
        assert document.meta.source == "HIGRESS"
        assert document.meta.create_from_type == "OPEN_API"

    @pytest.mark.asyncio
    async def test_direct_sse_route_falls_back_to_gateway_address(self, capability, console, gateway):
        console.routes[("GET", "/v1/mcpServer/weather")] = (200, {"data": {
            "name": "weather",
            "type": "DIRECT_ROUTE",
            "directRouteConfig": {"path": "/sse", "transportType": "SSE"},
        }})

        document = await capability.resolve_config(gateway, {"mcp_server_name": "weather"}, APIType.MCP_SERVER)

        assert document.mcp_server_config.path == "/mcp-servers/weather/sse"
        assert document.meta.protocol == "SSE"
        assert document.to_transport_url() == "http://10.0.0.1:8080/mcp-servers/weather/sse"

    @pytest.mark.asyncio
    async def test_placeholder_domain_when_nothing_is_known(self, capability, console):
        gateway = _make_gateway()
        console.routes[("GET", "/v1/mcpServer/weather")] = (200, {"data": {"name": "weather", "type": "OPEN_API"}})

        document = await capability.resolve_config(gateway, {"mcp_server_name": "weather"}, APIType.MCP_SERVER)

        assert document.mcp_server_config.domains[0].domain == "<higress-gateway-ip>"

    @pytest.mark.asyncio
    async def test_model_route(self, capability, console, gateway):
        console.routes[("GET", "/v1/ai/routes/chat")] = (200, {"data": {
            "name": "chat",
            "domains": [],
            "pathPredicate": {"matchType": "PRE", "matchValue": "/v1", "caseSensitive": False},
            "modelPredicates": [{"matchType": "EQUAL", "matchValue": "qwen"}],
        }})

        document = await capability.resolve_config(gateway, {"model_route_name": "chat"}, APIType.MODEL_API)

        assert isinstance(document, ModelConfigResult)
        route = document.model_api_config.routes[0]
        assert route.match.path.value == "/v1"
        assert route.match.methods == ["POST"]
        assert route.match.model_matches[0].name == "model"
        assert route.domains[0].domain == "10.0.0.1"


class TestFetchTools:

    @staticmethod
    def _config():
        return MCPConfigResult(
            mcp_server_name="weather",
            mcp_server_config=MCPServerConfig(
                path="/mcp-servers/weather/sse",
                domains=[DomainResult(domain="api.example.com", protocol="https")],
            ),
            meta=MCPMeta(source="HIGRESS", protocol="SSE"),
        )

    @pytest.mark.asyncio
    async def test_open_api_server_has_no_live_tools(self, capability, console, gateway, mcp_client):
        console.routes[("GET", "/v1/mcpServer/weather")] = (200, {"data": {"name": "weather", "type": "OPEN_API"}})

        assert await capability.fetch_mcp_tools(gateway, self._config()) is None
        assert mcp_client.calls == []

    @pytest.mark.asyncio
    async def test_direct_route_authenticates_as_first_consumer(self, capability, console, gateway, mcp_client):
        console.routes[("GET", "/v1/mcpServer/weather")] = (200, {"data": {
            "name": "weather",
            "type": "DIRECT_ROUTE",
            "consumerAuthInfo": {"enable": True, "allowedConsumers": ["c1"]},
        }})
        console.routes[("GET", "/v1/consumers/c1")] = (200, {"data": {
            "name": "c1",
            "credentials": [{"type": "key-auth", "source": "BEARER", "values": ["secret"]}],
        }})

        manifest = await capability.fetch_mcp_tools(gateway, self._config())

        transport, headers, _ = mcp_client.calls[0]
        assert transport.url == "https://api.example.com/mcp-servers/weather/sse"
        assert headers == {"Authorization": "Bearer secret"}
        assert json.loads(manifest)["tools"][0]["name"] == "forecast"


class TestPublish:

    @pytest.mark.asyncio
    async def test_publish_mcp_server_upserts(self, capability, console, gateway):
        console.routes[("PUT", "/v1/mcpServer")] = (200, {"data": {}})
        definition = _make_definition(
            name="weather",
            api_type=APIType.MCP_SERVER,
            spec={"endpoints": [{"name": "forecast", "type": "MCP_TOOL", "config": {"args": []}}]},
        )

        resource_ref = await capability.publish(
            gateway, definition, DeploymentOptions(domains=[{"domain": "api.example.com"}])
        )

        assert resource_ref == {"mcp_server_name": "weather"}
        body = console.body_of("PUT", "/v1/mcpServer")
        assert body["type"] == "OPEN_API"
        assert body["domains"] == ["api.example.com"]
        assert json.loads(body["rawConfigurations"])["tools"] == [{"args": [], "name": "forecast"}]

    @pytest.mark.asyncio
    async def test_publish_model_creates_missing_route(self, capability, console, gateway):
        console.routes[("POST", "/v1/ai/routes")] = (200, {"data": {}})
        definition = _make_definition(name="chat", api_type=APIType.MODEL_API)
        options = DeploymentOptions(base_path="/v1", service=ServiceOptions(provider="qwen"))

        resource_ref = await capability.publish(gateway, definition, options)

        assert resource_ref == {"model_route_name": "chat"}
        body = console.body_of("POST", "/v1/ai/routes")
        assert body["pathPredicate"]["matchValue"] == "/v1"
        assert body["upstreams"][0]["provider"] == "qwen"

    @pytest.mark.asyncio
    async def test_publish_model_updates_existing_route(self, capability, console, gateway):
        console.routes[("GET", "/v1/ai/routes/chat")] = (200, {"data": {"name": "chat"}})
        console.routes[("PUT", "/v1/ai/routes/chat")] = (200, {"data": {}})
        definition = _make_definition(name="chat", api_type=APIType.MODEL_API)

        await capability.publish(gateway, definition, DeploymentOptions(service=ServiceOptions(provider="qwen")))

        assert [r.method for r in console.requests] == ["GET", "PUT"]

    def test_model_publish_requires_service(self, capability):
        definition = _make_definition(name="chat", api_type=APIType.MODEL_API)

        with pytest.raises(ValidationError) as exc_info:
            capability.validate_publish_options(definition, DeploymentOptions())

        assert exc_info.value.code == "INVALID_OPTIONS"

    def test_rest_api_is_rejected(self, capability):
        with pytest.raises(ValidationError) as exc_info:
            capability.validate_publish_options(_make_definition(), DeploymentOptions())

        assert exc_info.value.code == "UNSUPPORTED_API_TYPE"

    @pytest.mark.asyncio
    async def test_unpublish_tolerates_missing_resource(self, capability, console, gateway):
        definition = _make_definition(name="weather", api_type=APIType.MCP_SERVER)

        await capability.unpublish(gateway, definition, DeploymentOptions())

        assert console.requests[0].method == "DELETE"
        assert console.requests[0].url.path == "/v1/mcpServer/weather"

    @pytest.mark.asyncio
    async def test_unpublish_propagates_server_errors(self, capability, console, gateway):
        console.routes[("DELETE", "/v1/mcpServer/weather")] = (500, {"message": "boom"})
        definition = _make_definition(name="weather", api_type=APIType.MCP_SERVER)

        with pytest.raises(VendorError) as exc_info:
            await capability.unpublish(gateway, definition, DeploymentOptions())

        assert exc_info.value.status_code == 500
        assert exc_info.value.vendor == "HIGRESS"


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_authorize_and_revoke_mcp_server(self, capability, console, gateway):
        console.routes[("PUT", "/v1/mcpServer/consumers/")] = (200, {})
        console.routes[("DELETE", "/v1/mcpServer/consumers/")] = (200, {})

        record = await capability.authorize_consumer(gateway, "c1", {"mcp_server_name": "weather"})
        await capability.revoke_authorization(gateway, "c1", record)

        assert record.data == {"resource_type": "MCP_SERVER", "resource_name": "weather"}
        assert console.body_of("PUT", "/v1/mcpServer/consumers/") == {
            "mcpServerName": "weather",
            "consumers": ["c1"],
        }
        assert console.requests[-1].method == "DELETE"

    @pytest.mark.asyncio
    async def test_authorize_model_route_allow_lists_consumer(self, capability, console, gateway):
        console.routes[("GET", "/v1/ai/routes/chat")] = (200, {"data": {
            "name": "chat",
            "authConfig": {"enabled": True, "allowedConsumers": ["c0"]},
        }})
        console.routes[("PUT", "/v1/ai/routes/chat")] = (200, {})

        record = await capability.authorize_consumer(gateway, "c1", {"model_route_name": "chat"})

        assert record.data["resource_type"] == "MODEL_API"
        assert console.body_of("PUT", "/v1/ai/routes/chat")["authConfig"]["allowedConsumers"] == ["c0", "c1"]

    @pytest.mark.asyncio
    async def test_authorize_needs_a_resource_name(self, capability, gateway):
        with pytest.raises(ValidationError):
            await capability.authorize_consumer(gateway, "c1", {})

    @pytest.mark.asyncio
    async def test_revoke_on_deleted_route_is_noop(self, capability, console, gateway):
        record = AuthRecord(
            vendor="HIGRESS",
            resource_ref={"model_route_name": "chat"},
            data={"resource_type": "MODEL_API", "resource_name": "chat"},
        )

        await capability.revoke_authorization(gateway, "c1", record)

        assert [r.method for r in console.requests] == ["GET"]
