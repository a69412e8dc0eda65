"""Tests for the ADP AI gateway capability."""
import json

import httpx
import pytest

from conftest import _make_definition, _make_gateway
from gateway_publisher.adapters.adp.adapter import AdpAIGatewayCapability
from gateway_publisher.errors import UnsupportedOperationError, ValidationError, VendorError
from gateway_publisher.models import APIType, GatewayVendor
from gateway_publisher.schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from gateway_publisher.schemas.deployment import DeploymentOptions
from gateway_publisher.schemas.gateway import ResourceKind


class AdpGateway:
    """Scripted ADP endpoint: ``envelopes[path] = {code, data, message}``."""

    def __init__(self):
        self.envelopes: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        envelope = self.envelopes.get(request.url.path, {"code": 500, "message": "unscripted"})
        return httpx.Response(200, json=envelope)

    def body_of(self, path: str) -> dict:
        return json.loads(next(r for r in self.requests if r.url.path == path).content)


@pytest.fixture
def adp():
    return AdpGateway()


@pytest.fixture
def capability(adp):
    return AdpAIGatewayCapability(transport=httpx.MockTransport(adp))


@pytest.fixture
def gateway():
    return _make_gateway(
        vendor=GatewayVendor.ADP_AI_GATEWAY,
        gateway_ref="gw-inst",
        connection_config={"base_url": "adp.local", "port": 8080, "auth_seed": "seed"},
    )


class TestClient:

    @pytest.mark.asyncio
    async def test_every_call_carries_instance_and_seed(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/listMcpServers"] = {"code": 200, "data": {"records": [], "total": 0}}

        await capability.list_resources(gateway, ResourceKind.MCP_SERVER)

        request = adp.requests[0]
        assert str(request.url) == "http://adp.local:8080/mcpServer/listMcpServers"
        assert request.headers["X-Auth-Seed"] == "seed"
        assert adp.body_of("/mcpServer/listMcpServers") == {"current": 1, "size": 20, "gwInstanceId": "gw-inst"}

    @pytest.mark.asyncio
    async def test_static_auth_headers(self, capability, adp):
        gateway = _make_gateway(
            vendor=GatewayVendor.ADP_AI_GATEWAY,
            gateway_ref="gw-inst",
            connection_config={
                "base_url": "http://adp.local",
                "port": 8080,
                "auth_headers": [{"key": "X-Token", "value": "t"}],
            },
        )
        adp.envelopes["/application/getApp"] = {"code": 200, "data": {"appId": "a1"}}

        assert await capability.consumer_exists(gateway, "a1") is True
        assert adp.requests[0].headers["X-Token"] == "t"
        assert "X-Auth-Seed" not in adp.requests[0].headers

    @pytest.mark.asyncio
    async def test_non_200_envelope_raises(self, capability, adp, gateway):
        adp.envelopes["/modelapi/listModelApis"] = {"code": 403, "msg": "forbidden"}

        with pytest.raises(VendorError) as exc_info:
            await capability.list_resources(gateway, ResourceKind.MODEL_API)

        assert exc_info.value.vendor_code == "403"
        assert "forbidden" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_gateway_ref_is_required(self, capability):
        gateway = _make_gateway(
            vendor=GatewayVendor.ADP_AI_GATEWAY,
            connection_config={"base_url": "adp.local", "port": 8080, "auth_seed": "seed"},
        )

        with pytest.raises(ValidationError):
            await capability.list_resources(gateway, ResourceKind.MCP_SERVER)


class TestResolve:

    @pytest.mark.asyncio
    async def test_mcp_server_prefers_instance_ingress(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/getMcpServer"] = {"code": 200, "data": {
            "name": "weather",
            "type": "OPEN_API",
            "rawConfigurations": "tools: []",
            "services": [{"name": "weather.svc", "port": 9000}],
        }}
        adp.envelopes["/gatewayInstance/getInstanceInfo"] = {"code": 200, "data": {"accessMode": [{
            "accessModeType": "NodePort",
            "ips": ["192.168.0.5"],
            "ports": ["80:30080/TCP"],
        }]}}

        document = await capability.resolve_config(gateway, {"mcp_server_name": "weather"}, APIType.MCP_SERVER)

        assert document.mcp_server_config.path == "/mcp-servers/weather"
        assert document.mcp_server_config.domains[0].base_url() == "http://192.168.0.5:30080"
        assert document.tools == "tools: []"

    @pytest.mark.asyncio
    async def test_mcp_server_falls_back_to_service_domains(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/getMcpServer"] = {"code": 200, "data": {
            "name": "weather",
            "services": [{"name": "weather.svc", "port": 9000}],
        }}
        adp.envelopes["/gatewayInstance/getInstanceInfo"] = {"code": 500, "message": "down"}

        document = await capability.resolve_config(gateway, {"mcp_server_name": "weather"}, APIType.MCP_SERVER)

        assert document.mcp_server_config.domains[0].base_url() == "http://weather.svc:9000"

    @pytest.mark.asyncio
    async def test_model_api(self, capability, adp, gateway):
        adp.envelopes["/modelapi/getModelApi"] = {"code": 200, "data": {
            "basePath": "/llm",
            "pathList": ["/v1/chat/completions", "/v1/embeddings"],
            "domainNameList": ["llm.example.com:8443"],
            "protocol": "openai_compatible",
            "sceneType": "Multimodal",
        }}
        adp.envelopes["/gatewayInstance/getInstanceInfo"] = {"code": 200, "data": {}}

        document = await capability.resolve_config(gateway, {"model_api_id": "m1"}, APIType.MODEL_API)

        config = document.model_api_config
        assert config.ai_protocols == ["OpenAI/V1"]
        assert config.model_category == "Multimodal"
        assert [r.match.path.value for r in config.routes] == ["/llm/v1/chat/completions", "/llm/v1/embeddings"]
        assert config.routes[0].domains[0].port == 8443

    @pytest.mark.asyncio
    async def test_model_api_needs_id(self, capability, gateway):
        with pytest.raises(ValidationError):
            await capability.resolve_config(gateway, {}, APIType.MODEL_API)


class TestConsumers:

    @pytest.mark.asyncio
    async def test_create_consumer_returns_application_id(self, capability, adp, gateway):
        adp.envelopes["/application/createApp"] = {"code": 200, "data": "app-42"}
        credential = ConsumerCredential(api_key_config={"api_key": "secret"})

        consumer_id = await capability.create_consumer(
            gateway, ConsumerSpec(consumer_id="c1", name="shop"), credential
        )

        assert consumer_id == "app-42"
        body = adp.body_of("/application/createApp")
        assert body["appName"] == "shop"
        assert body["key"] == "secret"

    @pytest.mark.asyncio
    async def test_consumer_exists_false_on_error_envelope(self, capability, adp, gateway):
        adp.envelopes["/application/getApp"] = {"code": 404, "message": "app not found"}

        assert await capability.consumer_exists(gateway, "nope") is False


class TestGrants:

    @pytest.mark.asyncio
    async def test_authorize_both_resources(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/addMcpServerConsumers"] = {"code": 200, "data": None}
        adp.envelopes["/modelapi/batchGrantModelApi"] = {"code": 200, "data": None}

        record = await capability.authorize_consumer(
            gateway, "app-1", {"mcp_server_name": "weather", "model_api_id": "m1"}
        )

        assert record.data == {"mcp_server_name": "weather", "model_api_id": "m1", "gw_instance_id": "gw-inst"}
        assert adp.body_of("/modelapi/batchGrantModelApi")["consumerIds"] == ["app-1"]

    @pytest.mark.asyncio
    async def test_authorize_needs_a_resource(self, capability, gateway):
        with pytest.raises(ValidationError):
            await capability.authorize_consumer(gateway, "app-1", {})

    @pytest.mark.asyncio
    async def test_revoke_tolerates_missing_grant(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/deleteMcpServerConsumers"] = {"code": 400, "message": "consumer not found"}
        adp.envelopes["/modelapi/listModelApiConsumers"] = {"code": 200, "data": {"records": [
            {"appId": "app-1", "authId": "auth-9"},
        ]}}
        adp.envelopes["/modelapi/revokeModelApiGrant"] = {"code": 200}
        record = AuthRecord(vendor="ADP_AI_GATEWAY", data={"mcp_server_name": "weather", "model_api_id": "m1"})

        await capability.revoke_authorization(gateway, "app-1", record)

        assert adp.body_of("/modelapi/revokeModelApiGrant")["authId"] == "auth-9"

    @pytest.mark.asyncio
    async def test_revoke_failure_raises(self, capability, adp, gateway):
        adp.envelopes["/mcpServer/deleteMcpServerConsumers"] = {"code": 500, "message": "database locked"}
        record = AuthRecord(vendor="ADP_AI_GATEWAY", data={"mcp_server_name": "weather"})

        with pytest.raises(VendorError):
            await capability.revoke_authorization(gateway, "app-1", record)


class TestPublishing:

    def test_publishing_is_unsupported(self, capability):
        with pytest.raises(UnsupportedOperationError):
            capability.validate_publish_options(_make_definition(), DeploymentOptions())

    @pytest.mark.asyncio
    async def test_fetch_tools_is_a_no_op(self, capability, gateway):
        assert await capability.fetch_mcp_tools(gateway, None) is None
