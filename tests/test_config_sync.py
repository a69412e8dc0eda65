"""Tests for Config Sync: ProductRef writes, MCP tool merge and read-triggered reloads."""
import httpx
import pytest
import pytest_asyncio

from conftest import _make_definition
from gateway_publisher.errors import ProductRefNotFoundError, UnsupportedOperationError
from gateway_publisher.models import APIType, PublishStatus
from gateway_publisher.models.deployment import DeploymentRecord
from gateway_publisher.models.product_ref import ProductRef
from gateway_publisher.schemas.config_document import MCPConfigResult, load_config
from gateway_publisher.schemas.deployment import DeploymentOptions
from gateway_publisher.services.mcp_client import MCPClientService, tools_to_manifest
from gateway_publisher.services.snapshot import build_snapshot


@pytest_asyncio.fixture
async def mcp_definition(seed, two_gateways):
    await seed(_make_definition(id="m1", name="weather", api_type=APIType.MCP_SERVER, product_id="prod-weather"))


class TestSyncAfterPublish:

    @pytest.mark.asyncio
    async def test_mcp_tools_are_merged(self, publish_service, config_sync, fake_capability, mcp_definition):
        fake_capability.tools = '{"tools": [{"name": "forecast"}]}'

        await publish_service.submit_publish("m1", "g1", DeploymentOptions(path="/mcp"))

        ref = await config_sync.get_resolved_config("prod-weather")
        document = load_config(ref.config)
        assert isinstance(document, MCPConfigResult)
        assert document.tools == '{"tools": [{"name": "forecast"}]}'
        assert document.mcp_server_config.path == "/mcp"
        assert document.to_transport_url() == "http://gw.example.com/mcp"
        assert ref.api_type == "MCP_SERVER"
        assert ref.vendor == "HIGRESS"

    @pytest.mark.asyncio
    async def test_tool_discovery_failure_is_skipped(
        self, publish_service, config_sync, fake_capability, mcp_definition
    ):
        fake_capability.tools_error = UnsupportedOperationError("HIGRESS", "fetch_mcp_tools")

        await publish_service.submit_publish("m1", "g1", DeploymentOptions(path="/mcp"))

        ref = await config_sync.get_resolved_config("prod-weather")
        assert ref.stale is False
        assert load_config(ref.config).tools is None

    @pytest.mark.asyncio
    async def test_non_json_tool_reply_is_skipped(
        self, publish_service, config_sync, fake_capability, mcp_definition
    ):
        def login_page(request):
            return httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})

        client = MCPClientService(timeout=5, transport=httpx.MockTransport(login_page))

        async def fetch_tools(gateway, document):
            return tools_to_manifest(document.mcp_server_name, await client.list_tools(document.to_transport_config()))

        fake_capability.fetch_mcp_tools = fetch_tools

        record = await publish_service.submit_publish("m1", "g1", DeploymentOptions(path="/mcp"))

        assert (await publish_service.get_deployment_status(record.id)).status is PublishStatus.ACTIVE
        ref = await config_sync.get_resolved_config("prod-weather")
        assert ref.stale is False
        assert load_config(ref.config).tools is None

    @pytest.mark.asyncio
    async def test_unexpected_tool_error_is_skipped(
        self, publish_service, config_sync, fake_capability, mcp_definition
    ):
        fake_capability.tools_error = AttributeError("'NoneType' object has no attribute 'get'")

        await publish_service.submit_publish("m1", "g1", DeploymentOptions(path="/mcp"))

        ref = await config_sync.get_resolved_config("prod-weather")
        assert load_config(ref.config).mcp_server_config.path == "/mcp"

    @pytest.mark.asyncio
    async def test_product_key_defaults_to_definition_id(self, publish_service, config_sync, two_gateways):
        await publish_service.submit_publish("a1", "g1")

        ref = await config_sync.get_resolved_config("a1")

        assert ref.api_definition_id == "a1"

    @pytest.mark.asyncio
    async def test_pending_deployment_is_not_synced(self, config_sync, seed, two_gateways, session_factory):
        snapshot = build_snapshot(_make_definition(), DeploymentOptions(path="/x"))
        await seed(DeploymentRecord(
            id="d1", api_definition_id="a1", gateway_id="g1",
            status=PublishStatus.PUBLISHING, snapshot=snapshot,
        ))

        assert await config_sync.sync_deployment("d1") is None
        async with session_factory() as session:
            assert await session.get(ProductRef, "a1") is None


class TestReadTriggeredReload:

    @pytest.mark.asyncio
    async def test_unknown_product(self, config_sync):
        with pytest.raises(ProductRefNotFoundError):
            await config_sync.get_resolved_config("nope")

    @pytest.mark.asyncio
    async def test_reads_within_ttl_do_not_reload(
        self, publish_service, config_sync, fake_capability, clock, two_gateways
    ):
        await publish_service.submit_publish("a1", "g1")
        assert len(fake_capability.resolved) == 1

        await config_sync.get_resolved_config("a1")
        clock.advance(299)
        await config_sync.get_resolved_config("a1")

        assert len(fake_capability.resolved) == 1

    @pytest.mark.asyncio
    async def test_read_after_ttl_reloads_once(
        self, publish_service, config_sync, fake_capability, clock, two_gateways
    ):
        await publish_service.submit_publish("a1", "g1")

        clock.advance(301)
        await config_sync.get_resolved_config("a1")
        await config_sync.get_resolved_config("a1")

        assert len(fake_capability.resolved) == 2

    @pytest.mark.asyncio
    async def test_superseded_generation_skips_reload(
        self, publish_service, config_sync, sync_marker, fake_capability, clock, two_gateways
    ):
        await publish_service.submit_publish("a1", "g1")
        clock.advance(301)
        generation = await sync_marker.mark("a1")
        await sync_marker.refresh("a1")

        await config_sync._background_reload("a1", generation)

        assert len(fake_capability.resolved) == 1


class TestReload:

    @pytest.mark.asyncio
    async def test_reload_resolves_again(self, publish_service, config_sync, fake_capability, two_gateways):
        await publish_service.submit_publish("a1", "g1", DeploymentOptions(path="/x"))

        ref = await config_sync.reload("a1")

        assert len(fake_capability.resolved) == 2
        assert ref.resource_ref == {"resource_name": "orders", "path": "/x"}

    @pytest.mark.asyncio
    async def test_reload_without_active_deployment_clears(
        self, config_sync, seed, two_gateways
    ):
        snapshot = build_snapshot(_make_definition(), DeploymentOptions())
        await seed(
            DeploymentRecord(
                id="d2", api_definition_id="a1", gateway_id="g1",
                status=PublishStatus.INACTIVE, snapshot=snapshot,
            ),
            ProductRef(
                product_id="a1", api_definition_id="a1", gateway_id="g1",
                vendor="HIGRESS", resource_ref={"resource_name": "orders"},
                config={"kind": "api", "meta": {"source": "HIGRESS"}}, stale=False,
            ),
        )

        ref = await config_sync.reload("a1")

        assert ref.stale is True
        assert ref.gateway_id is None
        assert ref.config is None

    @pytest.mark.asyncio
    async def test_reload_unknown_product(self, config_sync):
        with pytest.raises(ProductRefNotFoundError):
            await config_sync.reload("nope")


class TestClearProduct:

    @pytest.mark.asyncio
    async def test_clear_ignores_other_gateway(self, config_sync, seed, two_gateways, session_factory):
        await seed(ProductRef(product_id="a1", api_definition_id="a1", gateway_id="g2", stale=False))

        await config_sync.clear_product("a1", "g1")

        async with session_factory() as session:
            ref = await session.get(ProductRef, "a1")
        assert ref.gateway_id == "g2"
        assert ref.stale is False

    @pytest.mark.asyncio
    async def test_clear_missing_product_is_noop(self, config_sync):
        await config_sync.clear_product("nope", "g1")
