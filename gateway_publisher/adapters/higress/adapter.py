# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Higress gateway capability.

Publishes MCP servers and AI (model) routes through the Higress console.
REST APIs are not managed by Higress; Agent APIs are listed as empty.
"""

import logging
from typing import Optional

import httpx

from ...errors import ValidationError, VendorError
from ...models.api_definition import APIDefinition, APIType
from ...models.gateway import GatewayRecord, GatewayVendor
from ...schemas.config_document import (
    ConfigDocument,
    DomainResult,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
    ConfigMeta,
    ModelAPIConfig,
    ModelConfigResult,
)
from ...schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from ...schemas.deployment import DeploymentOptions
from ...schemas.gateway import HigressConfig, Page, ResourceKind, ResourceSummary, load_connection_config
from ...services.mcp_client import MCPClientService, tools_to_manifest
from ..domains import domain_from_address, resolve_domains
from ..gateway_capability import GatewayCapability
from . import mappers
from .client import HigressClient

logger = logging.getLogger(__name__)

RESOURCE_MCP_SERVER = "MCP_SERVER"
RESOURCE_MODEL_API = "MODEL_API"


class HigressCapability(GatewayCapability):
    """Higress console implementation of the GatewayCapability contract."""

    vendor = GatewayVendor.HIGRESS
    supported_api_types = (APIType.MCP_SERVER, APIType.MODEL_API)

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        mcp_client: Optional[MCPClientService] = None,
    ):
        self._transport = transport
        self._mcp_client = mcp_client or MCPClientService()

    def _client(self, gateway: GatewayRecord) -> HigressClient:
        config: HigressConfig = load_connection_config(gateway)
        return HigressClient(config, transport=self._transport)

    def _default_domains(self, gateway: GatewayRecord) -> list[DomainResult]:
        config: HigressConfig = load_connection_config(gateway)
        domain = domain_from_address(config.gateway_address)
        return [domain] if domain else []

    async def _resource_domains(self, client: HigressClient, names: list[str]) -> list[DomainResult]:
        domains = []
        for name in names:
            domain_config = await client.get_domain(name)
            domains.append(DomainResult(domain=name, protocol=mappers.domain_protocol(domain_config)))
        return domains

    # --- Discovery ---

    async def list_resources(self, gateway, kind, page=1, size=20):
        kind = ResourceKind(kind)
        client = self._client(gateway)

        if kind == ResourceKind.MCP_SERVER:
            servers, total = await client.list_mcp_servers(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=s.get("name"),
                    description=s.get("description"),
                    resource_ref={"mcp_server_name": s.get("name")},
                    extra={"type": s.get("type")},
                )
                for s in servers
            ]
            return Page(items=items, total=total, page=page, size=size)

        if kind == ResourceKind.MODEL_API:
            try:
                routes, total = await client.list_ai_routes(page, size)
            except VendorError as e:
                logger.warning(f"Failed to list Higress AI routes for gateway {gateway.id}: {e}")
                return Page.empty(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=r.get("name"),
                    resource_ref={"model_route_name": r.get("name")},
                )
                for r in routes
            ]
            return Page(items=items, total=total, page=page, size=size)

        if kind == ResourceKind.AGENT_API:
            return Page.empty(page, size)

        return await super().list_resources(gateway, kind, page, size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        api_type = APIType(api_type)
        if api_type == APIType.MCP_SERVER:
            return await self._resolve_mcp_config(gateway, resource_ref["mcp_server_name"])
        if api_type == APIType.MODEL_API:
            return await self._resolve_model_config(gateway, resource_ref["model_route_name"])
        return await super().resolve_config(gateway, resource_ref, api_type)

    async def _resolve_mcp_config(self, gateway: GatewayRecord, name: str) -> MCPConfigResult:
        client = self._client(gateway)
        server = await client.get_mcp_server(name)

        is_direct = (server.get("type") or "").lower() == "direct_route"
        transport_type = (server.get("directRouteConfig") or {}).get("transportType") if is_direct else None

        path = f"/mcp-servers/{server.get('name', name)}"
        if (transport_type or "").upper() == "SSE":
            path += "/sse"

        domains = resolve_domains(
            self.vendor.value,
            await self._resource_domains(client, server.get("domains") or []),
            self._default_domains(gateway),
        )

        return MCPConfigResult(
            mcp_server_name=server.get("name", name),
            mcp_server_config=MCPServerConfig(path=path, domains=domains),
            tools=server.get("rawConfigurations"),
            meta=MCPMeta(
                source=self.vendor.value,
                create_from_type=server.get("type"),
                protocol="SSE" if not transport_type or transport_type.upper() == "SSE" else "HTTP",
            ),
        )

    async def _resolve_model_config(self, gateway: GatewayRecord, route_name: str) -> ModelConfigResult:
        client = self._client(gateway)
        route = await client.get_ai_route(route_name)
        domains = resolve_domains(
            self.vendor.value,
            await self._resource_domains(client, route.get("domains") or []),
            self._default_domains(gateway),
        )
        return ModelConfigResult(
            model_api_config=ModelAPIConfig(routes=[mappers.ai_route_to_http_route(route, domains)]),
            meta=ConfigMeta(source=self.vendor.value, type=APIType.MODEL_API.value),
        )

    async def fetch_mcp_tools(self, gateway, mcp_config) -> Optional[str]:
        """Live tools of a direct-route server, authenticated as its first allowed consumer."""
        client = self._client(gateway)
        server = await client.get_mcp_server(mcp_config.mcp_server_name)
        if (server.get("type") or "").lower() != "direct_route":
            return None

        headers: dict = {}
        query: dict = {}
        auth_info = server.get("consumerAuthInfo") or {}
        allowed = auth_info.get("allowedConsumers") or []
        if auth_info.get("enable") and allowed:
            consumer = await client.get_consumer(allowed[0])
            headers, query = mappers.credential_context(consumer)

        transport = mcp_config.to_transport_config()
        if transport is None:
            return None
        tools = await self._mcp_client.list_tools(transport, headers=headers, query_params=query)
        return tools_to_manifest(mcp_config.mcp_server_name, tools)

    # --- Consumers ---

    async def create_consumer(self, gateway, consumer: ConsumerSpec, credential: ConsumerCredential) -> str:
        await self._client(gateway).create_consumer(
            mappers.build_consumer(consumer.consumer_id, credential)
        )
        return consumer.consumer_id

    async def update_consumer(self, gateway, consumer_id, credential) -> None:
        await self._client(gateway).update_consumer(
            consumer_id, mappers.build_consumer(consumer_id, credential)
        )

    async def delete_consumer(self, gateway, consumer_id) -> None:
        await self._client(gateway).delete_consumer(consumer_id)

    async def consumer_exists(self, gateway, consumer_id) -> bool:
        # Consumers are keyed by the portal consumer id; the console exposes no consumer lookup
        return True

    async def authorize_consumer(self, gateway, consumer_id, resource_ref) -> AuthRecord:
        client = self._client(gateway)
        server_name = resource_ref.get("mcp_server_name")
        if server_name:
            await client.add_mcp_consumers(server_name, [consumer_id])
            return AuthRecord(
                vendor=self.vendor.value,
                resource_ref=resource_ref,
                data={"resource_type": RESOURCE_MCP_SERVER, "resource_name": server_name},
            )

        route_name = resource_ref.get("model_route_name")
        if not route_name:
            raise ValidationError(
                "Higress authorization needs mcp_server_name or model_route_name",
                details={"resource_ref": resource_ref},
            )
        route = await client.get_ai_route(route_name)
        auth_config = route.get("authConfig") or {}
        allowed = list(auth_config.get("allowedConsumers") or [])
        if consumer_id not in allowed:
            allowed.append(consumer_id)
            auth_config["allowedConsumers"] = allowed
            route["authConfig"] = auth_config
            await client.update_ai_route(route)
        return AuthRecord(
            vendor=self.vendor.value,
            resource_ref=resource_ref,
            data={"resource_type": RESOURCE_MODEL_API, "resource_name": route_name},
        )

    async def revoke_authorization(self, gateway, consumer_id, auth_record) -> None:
        client = self._client(gateway)
        resource_type = (auth_record.data.get("resource_type") or "").upper()
        resource_name = auth_record.data.get("resource_name")
        if not resource_name:
            return

        try:
            if resource_type == RESOURCE_MCP_SERVER:
                await client.remove_mcp_consumers(resource_name, [consumer_id])
                return

            route = await client.get_ai_route(resource_name)
            auth_config = route.get("authConfig")
            if not auth_config or not auth_config.get("allowedConsumers"):
                return
            if consumer_id in auth_config["allowedConsumers"]:
                auth_config["allowedConsumers"].remove(consumer_id)
                await client.update_ai_route(route)
        except VendorError as e:
            if e.is_not_found:
                logger.info(f"Higress resource {resource_name} already gone, revoke is a no-op")
                return
            raise

    # --- Publishing ---

    def validate_publish_options(self, definition, options) -> None:
        super().validate_publish_options(definition, options)
        needs_service = (
            APIType(definition.api_type) == APIType.MODEL_API
            or mappers.mcp_server_type(definition) == mappers.DIRECT_ROUTE
        )
        if needs_service and (options.service is None or not (options.service.name or options.service.provider)):
            raise ValidationError(
                f"Publishing {definition.name} to Higress requires a backend service",
                code="INVALID_OPTIONS",
                details={"field": "service"},
            )

    async def publish(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        client = self._client(gateway)
        if APIType(definition.api_type) == APIType.MCP_SERVER:
            await client.put_mcp_server(mappers.build_mcp_server(definition, options))
            logger.info(f"Published MCP server {definition.name} to Higress gateway {gateway.id}")
            return {"mcp_server_name": definition.name}

        route = mappers.build_ai_route(definition, options)
        if await self._ai_route_exists(client, definition.name):
            await client.update_ai_route(route)
        else:
            await client.create_ai_route(route)
        logger.info(f"Published AI route {definition.name} to Higress gateway {gateway.id}")
        return {"model_route_name": definition.name}

    async def _ai_route_exists(self, client: HigressClient, name: str) -> bool:
        try:
            await client.get_ai_route(name)
            return True
        except VendorError as e:
            if e.is_not_found:
                return False
            raise

    async def unpublish(self, gateway, definition, options) -> None:
        client = self._client(gateway)
        try:
            if APIType(definition.api_type) == APIType.MCP_SERVER:
                await client.delete_mcp_server(definition.name)
            else:
                await client.delete_ai_route(definition.name)
        except VendorError as e:
            if not e.is_not_found:
                raise
            logger.warning(f"{definition.name} not found on Higress gateway {gateway.id}, nothing to unpublish")

    async def is_published(self, gateway, definition) -> bool:
        client = self._client(gateway)
        try:
            if APIType(definition.api_type) == APIType.MCP_SERVER:
                return bool(await client.get_mcp_server(definition.name))
            return bool(await client.get_ai_route(definition.name))
        except VendorError as e:
            if e.is_not_found:
                return False
            raise
