# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""ADP AI gateway capability.

Discovery of MCP servers and Model APIs, plus consumer (application)
management and grants. Publishing is not offered by this gateway.
"""

import logging
from typing import Optional

import httpx

from ...errors import ValidationError, VendorError
from ...models.api_definition import APIType
from ...models.gateway import GatewayRecord, GatewayVendor
from ...schemas.config_document import (
    ConfigDocument,
    ConfigMeta,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
    ModelAPIConfig,
    ModelConfigResult,
)
from ...schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from ...schemas.gateway import AdpAIGatewayConfig, Page, ResourceKind, ResourceSummary, load_connection_config
from ..domains import resolve_domains
from ..gateway_capability import GatewayCapability
from . import mappers
from .client import AdpClient, envelope_message

logger = logging.getLogger(__name__)


class AdpAIGatewayCapability(GatewayCapability):
    vendor = GatewayVendor.ADP_AI_GATEWAY
    supported_api_types = ()

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, gateway: GatewayRecord) -> AdpClient:
        config: AdpAIGatewayConfig = load_connection_config(gateway)
        if not gateway.gateway_ref:
            raise ValidationError(
                f"Gateway '{gateway.id}' has no gateway_ref (gwInstanceId)",
                details={"gateway_id": gateway.id},
            )
        return AdpClient(config, gateway.gateway_ref, transport=self._transport)

    async def _instance_domains(self, client: AdpClient):
        try:
            return mappers.access_mode_domains(await client.get_instance_info())
        except VendorError as e:
            logger.warning(f"Failed to read ADP instance access info: {e}")
            return []

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
            apis, total = await client.list_model_apis(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=a.get("apiName"),
                    id=a.get("id"),
                    description=a.get("description"),
                    resource_ref={"model_api_id": a.get("id"), "model_api_name": a.get("apiName")},
                )
                for a in apis
            ]
            return Page(items=items, total=total, page=page, size=size)

        return await super().list_resources(gateway, kind, page, size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        api_type = APIType(api_type)
        client = self._client(gateway)

        if api_type == APIType.MCP_SERVER:
            name = resource_ref.get("mcp_server_name")
            if not name:
                raise ValidationError("mcp_server_name is required", details={"resource_ref": resource_ref})
            server = await client.get_mcp_server(name)
            domains = resolve_domains(
                self.vendor.value,
                await self._instance_domains(client),
                mappers.service_domains(server),
            )
            return MCPConfigResult(
                mcp_server_name=server.get("name") or name,
                mcp_server_config=MCPServerConfig(
                    path=f"/mcp-servers/{server.get('name') or name}",
                    domains=domains,
                ),
                tools=server.get("rawConfigurations"),
                meta=MCPMeta(source=self.vendor.value, create_from_type=server.get("type")),
            )

        if api_type == APIType.MODEL_API:
            model_api_id = resource_ref.get("model_api_id")
            if not model_api_id:
                raise ValidationError("model_api_id is required", details={"resource_ref": resource_ref})
            model_api = await client.get_model_api(model_api_id)
            domains = resolve_domains(
                self.vendor.value,
                mappers.name_domains(model_api.get("domainNameList")),
                await self._instance_domains(client),
            )
            config = ModelAPIConfig(routes=mappers.model_routes(model_api, domains))
            protocol = mappers.map_protocol(model_api.get("protocol"))
            if protocol:
                config.ai_protocols = [protocol]
            if model_api.get("sceneType"):
                config.model_category = model_api["sceneType"]
            return ModelConfigResult(
                model_api_config=config,
                meta=ConfigMeta(source=self.vendor.value, type=APIType.MODEL_API.value),
            )

        return await super().resolve_config(gateway, resource_ref, api_type)

    async def fetch_mcp_tools(self, gateway, mcp_config) -> Optional[str]:
        # Tools are already part of the server's raw configuration
        return None

    # --- Consumers ---

    async def create_consumer(self, gateway, consumer: ConsumerSpec, credential: ConsumerCredential) -> str:
        data = await self._client(gateway).create_app(mappers.build_app(consumer.name, credential))
        if isinstance(data, str) and data:
            return data
        if isinstance(data, dict) and data.get("applicationId"):
            return data["applicationId"]
        return consumer.name

    async def update_consumer(self, gateway, consumer_id, credential) -> None:
        await self._client(gateway).modify_app(mappers.build_app_update(consumer_id, credential))

    async def delete_consumer(self, gateway, consumer_id) -> None:
        await self._client(gateway).delete_app(consumer_id)

    async def consumer_exists(self, gateway, consumer_id) -> bool:
        return await self._client(gateway).app_exists(consumer_id)

    async def authorize_consumer(self, gateway, consumer_id, resource_ref) -> AuthRecord:
        server_name = resource_ref.get("mcp_server_name")
        model_api_id = resource_ref.get("model_api_id")
        if not server_name and not model_api_id:
            raise ValidationError(
                "ADP authorization needs mcp_server_name or model_api_id",
                details={"resource_ref": resource_ref},
            )

        client = self._client(gateway)
        if server_name:
            await client.add_mcp_server_consumers(server_name, [consumer_id])
            logger.info(f"Authorized consumer {consumer_id} to ADP MCP server {server_name}")
        if model_api_id:
            await client.batch_grant_model_api(model_api_id, [consumer_id])
            logger.info(f"Authorized consumer {consumer_id} to ADP model API {model_api_id}")

        return AuthRecord(
            vendor=self.vendor.value,
            resource_ref=resource_ref,
            data={
                "mcp_server_name": server_name,
                "model_api_id": model_api_id,
                "gw_instance_id": gateway.gateway_ref,
            },
        )

    async def revoke_authorization(self, gateway, consumer_id, auth_record) -> None:
        client = self._client(gateway)
        server_name = auth_record.data.get("mcp_server_name")
        model_api_id = auth_record.data.get("model_api_id")

        if server_name:
            envelope = await client.delete_mcp_server_consumers(server_name, [consumer_id])
            self._check_revoke(envelope, f"MCP server {server_name}")

        if model_api_id:
            auth_id = next(
                (
                    r.get("authId")
                    for r in await client.list_model_api_consumers(model_api_id)
                    if r.get("appId") == consumer_id
                ),
                None,
            )
            if auth_id is None:
                logger.warning(f"No grant of model API {model_api_id} for consumer {consumer_id}, nothing to revoke")
                return
            envelope = await client.revoke_model_api_grant(auth_id)
            self._check_revoke(envelope, f"model API {model_api_id}")

    def _check_revoke(self, envelope: dict, target: str) -> None:
        if envelope.get("code") == 200:
            return
        if mappers.is_not_found_envelope(envelope):
            logger.warning(f"Grant on ADP {target} already removed: {envelope_message(envelope)}")
            return
        raise VendorError(
            f"Failed to revoke authorization on ADP {target}: {envelope_message(envelope)}",
            vendor=self.vendor.value,
            vendor_code=str(envelope.get("code")),
        )
