# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SOFA Higress gateway capability.

The console owns the translation of API definitions into routes, MCP
servers and AI APIs: publishing hands it the whole definition and the
deployment options, and it answers with the created resource id.
"""

import json
import logging
from typing import Optional

import httpx

from ...errors import ValidationError, VendorError
from ...models.api_definition import APIDefinition, APIDefinitionStatus, APIType
from ...models.gateway import GatewayRecord, GatewayVendor
from ...schemas.config_document import (
    APIConfigResult,
    ConfigDocument,
    ConfigMeta,
    DomainResult,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
    ModelAPIConfig,
    ModelConfigResult,
)
from ...schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from ...schemas.deployment import DeploymentOptions
from ...schemas.gateway import Page, ResourceKind, ResourceSummary, SofaHigressConfig, load_connection_config
from ...services.mcp_client import MCPClientService, tools_to_manifest
from ..domains import domain_from_address, resolve_domains
from ..gateway_capability import GatewayCapability
from ..higress.mappers import domain_protocol
from . import mappers
from .client import SofaHigressClient

logger = logging.getLogger(__name__)


def _is_not_found(error: VendorError) -> bool:
    return error.is_not_found or "NOT_FOUND" in (error.vendor_code or "").upper()


class SofaHigressCapability(GatewayCapability):
    """SOFA Higress console implementation of the GatewayCapability contract."""

    vendor = GatewayVendor.SOFA_HIGRESS
    supported_api_types = (APIType.MCP_SERVER, APIType.REST_API, APIType.MODEL_API)

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        mcp_client: Optional[MCPClientService] = None,
    ):
        self._transport = transport
        self._mcp_client = mcp_client or MCPClientService()

    def _client(self, gateway: GatewayRecord) -> SofaHigressClient:
        config: SofaHigressConfig = load_connection_config(gateway)
        return SofaHigressClient(config, transport=self._transport)

    async def _domains(self, client: SofaHigressClient, names: Optional[list]) -> list[DomainResult]:
        resource_domains = []
        for name in names or []:
            domain_config = await client.get_domain(name)
            resource_domains.append(DomainResult(domain=name, protocol=domain_protocol(domain_config)))

        default_domains = []
        if not resource_domains:
            default = domain_from_address(await client.get_gateway_url())
            if default:
                default_domains.append(default)
        return resolve_domains(self.vendor.value, resource_domains, default_domains)

    # --- Discovery ---

    async def list_resources(self, gateway, kind, page=1, size=20):
        kind = ResourceKind(kind)
        client = self._client(gateway)

        if kind == ResourceKind.REST_API:
            routes, total = await client.list_routes(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=r.get("name"),
                    id=r.get("routeId"),
                    description=r.get("description"),
                    resource_ref={"api_id": r.get("routeId"), "api_name": r.get("name")},
                )
                for r in routes
            ]
        elif kind == ResourceKind.MCP_SERVER:
            servers, total = await client.list_mcp_servers(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=s.get("name"),
                    id=s.get("serverId"),
                    description=s.get("description"),
                    resource_ref={"server_id": s.get("serverId"), "mcp_server_name": s.get("name")},
                    extra={"type": s.get("type")},
                )
                for s in servers
            ]
        elif kind == ResourceKind.MODEL_API:
            apis, total = await client.list_ai_apis(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=a.get("name"),
                    id=a.get("apiId"),
                    resource_ref={"model_api_id": a.get("apiId"), "model_api_name": a.get("name")},
                )
                for a in apis
            ]
        else:
            return Page.empty(page, size)

        return Page(items=items, total=total, page=page, size=size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        api_type = APIType(api_type)
        client = self._client(gateway)

        if api_type == APIType.REST_API:
            route = await client.get_route(route_id=resource_ref.get("api_id"))
            return APIConfigResult(
                spec=json.dumps(route, ensure_ascii=False),
                meta=ConfigMeta(source=self.vendor.value, type="Route"),
            )

        if api_type == APIType.MCP_SERVER:
            server = await client.get_mcp_server(resource_ref["server_id"])
            return MCPConfigResult(
                mcp_server_name=server.get("name"),
                mcp_server_config=MCPServerConfig(
                    path=f"{server.get('path') or ''}/sse",
                    domains=await self._domains(client, server.get("domains")),
                ),
                tools=json.dumps(server.get("tools") or [], ensure_ascii=False),
                meta=MCPMeta(
                    source=self.vendor.value,
                    create_from_type=server.get("type"),
                    protocol="SSE",
                ),
            )

        if api_type == APIType.MODEL_API:
            api = await client.get_api(api_id=resource_ref.get("model_api_id"))
            route = api.get("routeInfo") or {}
            domains = await self._domains(client, route.get("domains"))
            return ModelConfigResult(
                model_api_config=ModelAPIConfig(routes=[mappers.route_to_http_route(route, domains)]),
                meta=ConfigMeta(source=self.vendor.value, type=APIType.MODEL_API.value),
            )

        return await super().resolve_config(gateway, resource_ref, api_type)

    async def fetch_mcp_tools(self, gateway, mcp_config) -> Optional[str]:
        """Live tools, authenticated as the first allowed consumer of this tenant."""
        client = self._client(gateway)
        server = await client.get_mcp_server_by_name(mcp_config.mcp_server_name)

        headers: dict = {}
        query: dict = {}
        auth_config = server.get("authConfig") or {}
        if auth_config.get("enabled"):
            tenant_consumers = {c.get("name") for c in await client.list_consumers()}
            consumer_name = next(
                (name for name in auth_config.get("allowedConsumers") or [] if name in tenant_consumers),
                None,
            )
            if consumer_name is None:
                logger.warning(
                    f"No allowed consumer of MCP server {mcp_config.mcp_server_name} "
                    f"belongs to this tenant, skipping tool listing"
                )
                return None
            consumer = await client.get_consumer_by_name(consumer_name) or {}
            headers, query = mappers.key_auth_context(consumer.get("keyAuthConfig"))

        transport = mcp_config.to_transport_config()
        if transport is None:
            return None
        tools = await self._mcp_client.list_tools(transport, headers=headers, query_params=query)
        return tools_to_manifest(mcp_config.mcp_server_name, tools)

    # --- Consumers ---

    async def create_consumer(self, gateway, consumer: ConsumerSpec, credential: ConsumerCredential) -> str:
        created = await self._client(gateway).create_consumer(
            mappers.build_consumer(consumer.consumer_id, credential)
        )
        return created.get("consumerId")

    async def update_consumer(self, gateway, consumer_id, credential) -> None:
        await self._client(gateway).update_consumer(
            mappers.build_consumer(None, credential, consumer_id=consumer_id)
        )

    async def delete_consumer(self, gateway, consumer_id) -> None:
        await self._client(gateway).delete_consumer(consumer_id)

    async def consumer_exists(self, gateway, consumer_id) -> bool:
        try:
            return bool(await self._client(gateway).get_consumer(consumer_id))
        except VendorError as e:
            if _is_not_found(e):
                return False
            raise

    async def authorize_consumer(self, gateway, consumer_id, resource_ref) -> AuthRecord:
        client = self._client(gateway)

        if resource_ref.get("api_id"):
            await client.subscribe_route(resource_ref["api_id"], consumer_id)
            resource_type, resource_name = APIType.REST_API, resource_ref.get("api_name")
        elif resource_ref.get("server_id"):
            server = await client.get_mcp_server(resource_ref["server_id"])
            await client.subscribe_mcp_server(server.get("routeId"), consumer_id)
            resource_type, resource_name = APIType.MCP_SERVER, resource_ref.get("mcp_server_name")
        elif resource_ref.get("model_api_id"):
            api = await client.get_api(api_id=resource_ref["model_api_id"])
            await client.subscribe_route((api.get("routeInfo") or {}).get("routeId"), consumer_id)
            resource_type, resource_name = APIType.MODEL_API, resource_ref.get("model_api_name")
        else:
            raise ValidationError(
                "SOFA Higress authorization needs api_id, server_id or model_api_id",
                details={"resource_ref": resource_ref},
            )

        return AuthRecord(
            vendor=self.vendor.value,
            resource_ref=resource_ref,
            data={"resource_type": resource_type.value, "resource_name": resource_name},
        )

    async def revoke_authorization(self, gateway, consumer_id, auth_record) -> None:
        resource_type = (auth_record.data.get("resource_type") or "").upper()
        resource_name = auth_record.data.get("resource_name")
        if not resource_type or not resource_name:
            return
        client = self._client(gateway)

        try:
            if resource_type == APIType.REST_API.value:
                route = await client.get_route(route_name=resource_name)
                if route.get("routeId"):
                    await client.unsubscribe_route(route["routeId"], consumer_id)
            elif resource_type == APIType.MCP_SERVER.value:
                server = await client.get_mcp_server_by_name(resource_name)
                if server.get("routeId"):
                    await client.unsubscribe_mcp_server(server["routeId"], consumer_id)
            else:
                api = await client.get_api(api_name=resource_name)
                route_id = (api.get("routeInfo") or {}).get("routeId")
                if route_id:
                    await client.unsubscribe_route(route_id, consumer_id)
        except VendorError as e:
            if not _is_not_found(e):
                raise
            logger.info(f"SOFA Higress resource {resource_name} already gone, revoke is a no-op")

    # --- Publishing ---

    def validate_publish_options(self, definition, options) -> None:
        if definition is None or options is None:
            raise ValidationError(
                "API definition or deployment options are missing",
                code="INVALID_OPTIONS",
            )
        super().validate_publish_options(definition, options)
        if APIDefinitionStatus(definition.status or APIDefinitionStatus.DRAFT) != APIDefinitionStatus.DRAFT:
            raise ValidationError(
                "Only draft API definitions can be published to SOFA Higress",
                details={"api_definition_id": definition.id, "status": str(definition.status)},
            )

    async def publish(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        result = await self._client(gateway).publish_definition(
            mappers.build_definition_vo(definition),
            mappers.build_publish_config(options),
        )
        resource_id = result.get("resourceId")
        logger.info(
            f"Published {definition.name} to SOFA Higress gateway {gateway.id} "
            f"as {result.get('type')} {resource_id}"
        )
        return mappers.resource_ref_for(definition, resource_id)

    async def unpublish(self, gateway, definition, options) -> None:
        await self._client(gateway).unpublish_definition(
            mappers.build_definition_vo(definition),
            mappers.build_publish_config(options),
        )

    async def is_published(self, gateway, definition) -> bool:
        return await self._client(gateway).is_definition_published(
            mappers.build_definition_vo(definition)
        )
