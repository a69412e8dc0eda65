# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Nacos AI registry capability: discovery of MCP servers and A2A agents only."""

import json
import logging
from typing import Optional

import httpx

from ...errors import ValidationError
from ...models.api_definition import APIType
from ...models.gateway import GatewayRecord, GatewayVendor
from ...schemas.config_document import (
    AgentAPIConfig,
    AgentConfigResult,
    ConfigDocument,
    ConfigMeta,
    DomainResult,
    MCPConfigResult,
    MCPMeta,
    MCPServerConfig,
)
from ...schemas.gateway import NacosConfig, Page, ResourceKind, ResourceSummary, load_connection_config
from ..domains import resolve_domains
from ..gateway_capability import GatewayCapability
from .client import NacosClient

logger = logging.getLogger(__name__)

A2A_PROTOCOL = "a2a"


def _mcp_protocol(server: dict) -> Optional[str]:
    protocol = (server.get("frontProtocol") or server.get("protocol") or "").lower()
    if "sse" in protocol:
        return "SSE"
    if protocol in ("", "stdio"):
        return None
    return "HTTP"


def _endpoint_domains(server: dict) -> list[DomainResult]:
    domains = []
    for endpoint in server.get("frontendEndpoints") or server.get("backendEndpoints") or []:
        if not endpoint.get("address"):
            continue
        domains.append(DomainResult(
            domain=endpoint["address"],
            protocol=(endpoint.get("protocol") or "http").lower(),
            port=endpoint.get("port"),
        ))
    return domains


class NacosCapability(GatewayCapability):
    vendor = GatewayVendor.NACOS
    supported_api_types = ()

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, gateway: GatewayRecord) -> NacosClient:
        config: NacosConfig = load_connection_config(gateway)
        return NacosClient(config, namespace=gateway.gateway_ref, transport=self._transport)

    async def list_resources(self, gateway, kind, page=1, size=20):
        kind = ResourceKind(kind)
        client = self._client(gateway)

        if kind == ResourceKind.MCP_SERVER:
            servers, total = await client.list_mcp_servers(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=s.get("name"),
                    id=s.get("id"),
                    description=s.get("description"),
                    resource_ref={
                        "mcp_server_name": s.get("name"),
                        "mcp_server_id": s.get("id"),
                        "namespace_id": client.namespace,
                    },
                    extra={"protocol": s.get("protocol")},
                )
                for s in servers
            ]
            return Page(items=items, total=total, page=page, size=size)

        if kind == ResourceKind.AGENT_API:
            agents, total = await client.list_agents(page, size)
            items = [
                ResourceSummary(
                    kind=kind,
                    name=a.get("name"),
                    description=a.get("description"),
                    resource_ref={"agent_name": a.get("name"), "namespace_id": client.namespace},
                    extra={"version": a.get("version")},
                )
                for a in agents
            ]
            return Page(items=items, total=total, page=page, size=size)

        return await super().list_resources(gateway, kind, page, size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        api_type = APIType(api_type)
        client = self._client(gateway)

        if api_type == APIType.MCP_SERVER:
            name = resource_ref.get("mcp_server_name")
            if not name and not resource_ref.get("mcp_server_id"):
                raise ValidationError("mcp_server_name is required", details={"resource_ref": resource_ref})
            server = await client.get_mcp_server(name=name, mcp_id=resource_ref.get("mcp_server_id"))
            remote = server.get("remoteServerConfig") or {}
            tool_spec = server.get("toolSpec")
            return MCPConfigResult(
                mcp_server_name=server.get("name") or name,
                mcp_server_config=MCPServerConfig(
                    path=remote.get("exportPath"),
                    domains=resolve_domains(self.vendor.value, _endpoint_domains(server)),
                    raw_config=server,
                ),
                tools=json.dumps(tool_spec, ensure_ascii=False) if tool_spec else None,
                meta=MCPMeta(source=self.vendor.value, protocol=_mcp_protocol(server)),
            )

        if api_type == APIType.AGENT_API:
            agent_name = resource_ref.get("agent_name")
            if not agent_name:
                raise ValidationError("agent_name is required", details={"resource_ref": resource_ref})
            card = await client.get_agent_card(agent_name)
            return AgentConfigResult(
                agent_api_config=AgentAPIConfig(agent_protocols=[A2A_PROTOCOL], agent_card=card),
                meta=ConfigMeta(source=self.vendor.value, type=APIType.AGENT_API.value),
            )

        return await super().resolve_config(gateway, resource_ref, api_type)
