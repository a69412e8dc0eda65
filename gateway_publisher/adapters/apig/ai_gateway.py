# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cloud API gateway, AI flavour (APIG_AI).

Publishes MCP servers, Model APIs (HTTP APIs of type LLM) and Agent APIs
(HTTP APIs of type Agent).
"""

import json
import logging

from ...errors import VendorError
from ...models.api_definition import APIDefinition, APIType
from ...models.gateway import GatewayRecord, GatewayVendor
from ...schemas.config_document import (
    AgentAPIConfig,
    AgentConfigResult,
    ConfigDocument,
    ConfigMeta,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
    ModelAPIConfig,
    ModelConfigResult,
)
from ...schemas.deployment import DeploymentOptions
from ...schemas.gateway import Page, ResourceKind, ResourceSummary
from ..domains import resolve_domains
from . import mappers
from .base import ApigCapabilityBase
from .client import ApigClient

logger = logging.getLogger(__name__)

MODEL_API_TYPE = "LLM"
AGENT_API_TYPE = "Agent"
ROUTE_PAGE_SIZE = 500

# Resource types of consumer authorization rules
AUTH_MCP = "MCP"
AUTH_AGENT = "Agent"
AUTH_LLM = "LLM"


class ApigAiCapability(ApigCapabilityBase):
    vendor = GatewayVendor.APIG_AI
    supported_api_types = (APIType.MCP_SERVER, APIType.AGENT_API, APIType.MODEL_API)
    gateway_type = "AI"

    # --- Discovery ---

    async def list_resources(self, gateway, kind, page=1, size=20):
        kind = ResourceKind(kind)
        client = self._client(gateway)
        gateway_id = self._gateway_id(gateway)

        if kind == ResourceKind.MCP_SERVER:
            servers, total = await client.list_mcp_servers(gateway_id, page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=s.get("name"),
                    id=s.get("mcpServerId"),
                    description=s.get("description"),
                    resource_ref={
                        "mcp_server_id": s.get("mcpServerId"),
                        "mcp_server_name": s.get("name"),
                        "mcp_route_id": s.get("routeId"),
                    },
                    extra={"protocol": s.get("protocol"), "create_from_type": s.get("createFromType")},
                )
                for s in servers
            ]
            return Page(items=items, total=total, page=page, size=size)

        if kind in (ResourceKind.AGENT_API, ResourceKind.MODEL_API):
            is_agent = kind == ResourceKind.AGENT_API
            api_type = AGENT_API_TYPE if is_agent else MODEL_API_TYPE
            prefix = "agent_api" if is_agent else "model_api"
            apis, total = await client.list_http_apis(
                gateway_id, api_type, page, size, gateway_type=self.gateway_type,
            )
            items = [
                ResourceSummary(
                    kind=kind,
                    name=api.get("name"),
                    id=api.get("httpApiId"),
                    description=api.get("description"),
                    resource_ref={f"{prefix}_id": api.get("httpApiId"), f"{prefix}_name": api.get("name")},
                )
                for api in mappers.versioned_apis(apis)
            ]
            return Page(items=items, total=total, page=page, size=size)

        return await super().list_resources(gateway, kind, page, size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        api_type = APIType(api_type)
        if api_type == APIType.MCP_SERVER:
            return await self._resolve_mcp_config(gateway, resource_ref)
        if api_type == APIType.AGENT_API:
            routes, protocols = await self._http_api_routes(gateway, resource_ref["agent_api_id"])
            return AgentConfigResult(
                agent_api_config=AgentAPIConfig(agent_protocols=protocols, routes=routes),
                meta=ConfigMeta(source=self.vendor.value, type=APIType.AGENT_API.value),
            )
        if api_type == APIType.MODEL_API:
            routes, protocols = await self._http_api_routes(gateway, resource_ref["model_api_id"])
            config = ModelAPIConfig(routes=routes)
            if protocols:
                config.ai_protocols = protocols
            return ModelConfigResult(
                model_api_config=config,
                meta=ConfigMeta(source=self.vendor.value, type=APIType.MODEL_API.value),
            )
        return await super().resolve_config(gateway, resource_ref, api_type)

    async def _resolve_mcp_config(self, gateway: GatewayRecord, resource_ref: dict) -> MCPConfigResult:
        client = self._client(gateway)
        server = await client.get_mcp_server(resource_ref["mcp_server_id"])

        path = (server.get("mcpServerPath") or "") + (server.get("exposedUriPath") or "")
        domains = mappers.mcp_domains(server) + await self._default_domains(client, gateway)

        return MCPConfigResult(
            mcp_server_name=server.get("name") or resource_ref.get("mcp_server_name"),
            mcp_server_config=MCPServerConfig(
                path=path or None,
                domains=resolve_domains(self.vendor.value, domains),
            ),
            tools=mappers.decode_if_base64(server.get("mcpServerConfig")),
            meta=MCPMeta(
                source=self.vendor.value,
                protocol=server.get("protocol"),
                create_from_type=server.get("createFromType"),
            ),
        )

    async def _http_api_routes(self, gateway: GatewayRecord, http_api_id: str):
        client = self._client(gateway)
        api_info = await client.get_http_api(http_api_id)
        domains = resolve_domains(
            self.vendor.value,
            mappers.api_domains(api_info),
            await self._default_domains(client, gateway),
        )
        routes, _ = await client.list_http_api_routes(http_api_id, 1, ROUTE_PAGE_SIZE)
        protocols = list(api_info.get("aiProtocols") or api_info.get("agentProtocols") or [])
        return [mappers.http_route_to_result(r, domains) for r in routes], protocols

    # --- Publishing ---

    async def publish(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        api_type = APIType(definition.api_type)
        if api_type == APIType.MCP_SERVER:
            return await self._publish_mcp_server(gateway, definition, options)
        if api_type == APIType.MODEL_API:
            return await self._publish_model_api(gateway, definition, options)
        return await self._publish_agent_api(gateway, definition, options)

    async def _find_mcp_server_id(self, client: ApigClient, gateway: GatewayRecord, name: str):
        servers, _ = await client.list_mcp_servers(self._gateway_id(gateway), 1, 100, name=name)
        server = next((s for s in servers if s.get("name") == name), None)
        return server.get("mcpServerId") if server else None

    async def _publish_mcp_server(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        client = self._client(gateway)
        gateway_id = self._gateway_id(gateway)

        body: dict = {
            "name": definition.name,
            "type": mappers.MCP_TYPE,
            "match": mappers.mcp_match(definition),
            "gatewayId": gateway_id,
            "protocol": "HTTP",
            "domainIds": await self._domain_ids(client, gateway, options.domain_names),
        }
        if definition.metadata_.get("mcpBridgeType") == "DIRECT":
            meta = options.service.meta if options.service else {}
            body["protocol"] = meta.get("mcpProtocol", "SSE")
            body["exposedUriPath"] = meta.get("mcpPath")
            body["createFromType"] = mappers.MCP_DIRECT_CREATE_FROM
        if definition.description:
            body["description"] = definition.description
        if options.service is not None:
            service_id = await self._ensure_service(client, gateway, definition.name, options.service)
            body["backendConfig"] = {
                "scene": mappers.SINGLE_SERVICE,
                "services": [{"serviceId": service_id}],
            }
        body = {k: v for k, v in body.items() if v is not None}

        server_id = await self._find_mcp_server_id(client, gateway, definition.name)
        if server_id:
            logger.info(f"MCP server {definition.name} exists on gateway {gateway_id}, updating {server_id}")
            update = dict(body)
            update.pop("name", None)
            update.pop("gatewayId", None)
            await client.update_mcp_server(server_id, update)
        else:
            server_id = await client.create_mcp_server(body)
            if not server_id:
                raise VendorError(
                    f"Gateway did not return an id for MCP server {definition.name}",
                    vendor=self.vendor.value,
                )
            logger.info(f"Created MCP server {definition.name} ({server_id})")

        await client.deploy_mcp_server(server_id)
        server = await client.get_mcp_server(server_id)
        route_id = server.get("routeId")
        await self._attach_mcp_plugin(client, gateway, definition, server, route_id)

        return {
            "mcp_server_id": server_id,
            "mcp_server_name": definition.name,
            "mcp_route_id": route_id,
        }

    async def _attach_mcp_plugin(self, client, gateway, definition, server: dict, route_id) -> None:
        plugin_config = mappers.mcp_plugin_config(definition)
        attachment_id = server.get("mcpServerConfigPluginAttachmentId")
        if attachment_id:
            await client.update_plugin_attachment(attachment_id, {
                "attachResourceIds": [route_id],
                "enable": True,
                "pluginConfig": plugin_config,
            })
            return

        plugins = await client.list_plugin_classes(self._gateway_id(gateway), "mcp-server")
        if not plugins:
            raise VendorError("mcp-server plugin is not installed on the gateway", vendor=self.vendor.value)
        await client.create_plugin_attachment({
            "gatewayId": self._gateway_id(gateway),
            "pluginId": plugins[0].get("pluginId") or plugins[0].get("pluginClassId"),
            "attachResourceIds": [route_id],
            "attachResourceType": "GatewayRoute",
            "enable": True,
            "pluginConfig": plugin_config,
        })

    async def _deploy_config(
        self,
        client: ApigClient,
        gateway: GatewayRecord,
        definition: APIDefinition,
        options: DeploymentOptions,
        environment_id: str,
        policy_configs: list,
    ) -> dict:
        service_configs = []
        if options.service is not None:
            service_id = await self._ensure_service(client, gateway, definition.name, options.service)
            service_configs.append({"serviceId": service_id})
        else:
            logger.warning(f"No backend service in the options of {definition.name}")
        return {
            "gatewayId": self._gateway_id(gateway),
            "environmentId": environment_id,
            "autoDeploy": True,
            "customDomainIds": await self._domain_ids(client, gateway, options.domain_names),
            "backendScene": mappers.SINGLE_SERVICE,
            "serviceConfigs": service_configs,
            "policyConfigs": policy_configs,
            "gatewayType": "AI",
        }

    async def _upsert_http_api(
        self,
        client: ApigClient,
        gateway: GatewayRecord,
        definition: APIDefinition,
        api_type: str,
        protocols: list,
        deploy_config: dict,
        base_path: str,
        category: str = None,
    ) -> str:
        body = {
            "name": definition.name,
            "type": api_type,
            "basePath": base_path,
            "protocols": ["HTTP"],
            "aiProtocols": protocols if api_type == MODEL_API_TYPE else None,
            "agentProtocols": protocols if api_type == AGENT_API_TYPE else None,
            "deployConfigs": [deploy_config],
            "description": definition.description,
            "modelCategory": category,
        }
        body = {k: v for k, v in body.items() if v is not None}

        api_id = await self._find_http_api_id(client, gateway, definition.name, api_type)
        if api_id:
            logger.info(f"HTTP API {definition.name} exists, updating {api_id}")
            await client.update_http_api(api_id, body)
            return api_id

        api_id = await client.create_http_api(body)
        if not api_id:
            raise VendorError(
                f"Gateway did not return an id for HTTP API {definition.name}",
                vendor=self.vendor.value,
            )
        logger.info(f"Created HTTP API {definition.name} ({api_id})")
        return api_id

    def _base_path(self, definition: APIDefinition, options: DeploymentOptions) -> str:
        if options.base_path:
            return options.base_path
        logger.warning(f"No base_path for {definition.name}, using /")
        return "/"

    async def _publish_model_api(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        client = self._client(gateway)
        environment_id = await self._environment_id(client, gateway)
        deploy_config = await self._deploy_config(
            client, gateway, definition, options, environment_id, mappers.policy_configs(definition),
        )
        api_id = await self._upsert_http_api(
            client, gateway, definition, MODEL_API_TYPE,
            options.ai_protocols or list(mappers.DEFAULT_MODEL_PROTOCOLS),
            deploy_config,
            self._base_path(definition, options),
            category=mappers.model_category(definition),
        )
        await self._attach_policies(client, gateway, definition, environment_id, api_id, "LLMApi")
        return {"model_api_id": api_id, "model_api_name": definition.name}

    async def _publish_agent_api(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        client = self._client(gateway)
        environment_id = await self._environment_id(client, gateway)
        deploy_config = await self._deploy_config(client, gateway, definition, options, environment_id, [])
        api_id = await self._upsert_http_api(
            client, gateway, definition, AGENT_API_TYPE,
            options.agent_protocols or list(mappers.DEFAULT_AGENT_PROTOCOLS),
            deploy_config,
            self._base_path(definition, options),
        )

        service_ids = [s["serviceId"] for s in deploy_config["serviceConfigs"]]
        for endpoint in definition.endpoints:
            match = mappers.endpoint_route_match(endpoint)
            if match is None:
                logger.warning(f"Endpoint {endpoint.get('name')} has no HTTP path, skipping route")
                continue
            route = {
                "name": endpoint.get("name"),
                "environmentId": environment_id,
                "domainIds": deploy_config["customDomainIds"],
                "match": match,
                "backendConfig": {
                    "scene": mappers.SINGLE_SERVICE,
                    "services": [{"serviceId": sid} for sid in service_ids[:1]],
                },
            }
            try:
                await client.create_http_api_route(api_id, route)
            except VendorError as e:
                logger.error(f"Failed to create route for endpoint {endpoint.get('name')}: {e}")

        await self._attach_policies(client, gateway, definition, environment_id, api_id, "AgentApi")
        return {"agent_api_id": api_id, "agent_api_name": definition.name}

    async def _attach_policies(self, client, gateway, definition, environment_id, api_id, resource_type) -> None:
        for class_name, prop in mappers.attachable_policies(definition):
            try:
                policy_id = await client.create_policy({
                    "name": f"{definition.name}-{class_name}",
                    "className": class_name,
                    "config": json.dumps(prop, ensure_ascii=False),
                })
                await client.create_policy_attachment({
                    "policyId": policy_id,
                    "attachResourceType": resource_type,
                    "attachResourceId": api_id,
                    "environmentId": environment_id,
                    "gatewayId": self._gateway_id(gateway),
                })
                logger.info(f"Attached policy {class_name} to {definition.name}")
            except VendorError as e:
                logger.error(f"Failed to attach policy {class_name} to {definition.name}: {e}")

    async def unpublish(self, gateway, definition, options) -> None:
        client = self._client(gateway)
        api_type = APIType(definition.api_type)

        if api_type == APIType.MCP_SERVER:
            server_id = await self._find_mcp_server_id(client, gateway, definition.name)
            if not server_id:
                logger.warning(f"MCP server {definition.name} not found on gateway {gateway.id}")
                return
            await client.undeploy_mcp_server(server_id)
            logger.info(f"Undeployed MCP server {definition.name} ({server_id})")
            return

        http_type = MODEL_API_TYPE if api_type == APIType.MODEL_API else AGENT_API_TYPE
        api_id = await self._find_http_api_id(client, gateway, definition.name, http_type)
        if not api_id:
            logger.warning(f"HTTP API {definition.name} not found on gateway {gateway.id}")
            return
        environment_id = await self._environment_id(client, gateway)
        try:
            await client.undeploy_http_api(api_id, {"environmentId": environment_id})
        except VendorError as e:
            if not e.is_not_found:
                raise
        logger.info(f"Undeployed HTTP API {definition.name} ({api_id})")

    async def is_published(self, gateway, definition) -> bool:
        client = self._client(gateway)
        api_type = APIType(definition.api_type)
        if api_type == APIType.MCP_SERVER:
            return bool(await self._find_mcp_server_id(client, gateway, definition.name))
        http_type = MODEL_API_TYPE if api_type == APIType.MODEL_API else AGENT_API_TYPE
        return bool(await self._find_http_api_id(client, gateway, definition.name, http_type))

    # --- Authorization ---

    def _authorization_target(self, resource_ref: dict) -> tuple[str, str]:
        if resource_ref.get("mcp_route_id"):
            return AUTH_MCP, resource_ref["mcp_route_id"]
        if resource_ref.get("agent_api_id"):
            return AUTH_AGENT, resource_ref["agent_api_id"]
        return AUTH_LLM, resource_ref.get("model_api_id")
