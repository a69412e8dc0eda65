# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Vendor-neutral configuration documents.

Every GatewayCapability resolves a gateway resource into one of these
documents. They are persisted on ProductRef and served to consumers
without touching the gateway again. Each document carries ``meta.source``
naming the vendor it was resolved from.
"""
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============== Domains ==============

class DomainResult(BaseModel):
    """Host a published resource is reachable on."""
    domain: str
    protocol: str = "http"
    port: Optional[int] = None
    network_type: Optional[str] = Field(None, description="intranet / internet")
    meta: Optional[dict] = None

    @property
    def is_intranet(self) -> bool:
        return (self.network_type or "").lower() == "intranet"

    def base_url(self) -> str:
        scheme = self.protocol or "http"
        if self.port and self.port > 0:
            return f"{scheme}://{self.domain}:{self.port}"
        return f"{scheme}://{self.domain}"


# ============== HTTP routes ==============

class RouteMatchPath(BaseModel):
    value: Optional[str] = None
    type: Optional[str] = None
    case_sensitive: Optional[bool] = None


class RouteMatchItem(BaseModel):
    """Header, query parameter or model predicate of a route."""
    name: Optional[str] = None
    type: Optional[str] = None
    value: Optional[str] = None
    case_sensitive: Optional[bool] = None


class RouteMatch(BaseModel):
    methods: Optional[List[str]] = None
    path: Optional[RouteMatchPath] = None
    headers: Optional[List[RouteMatchItem]] = None
    query_params: Optional[List[RouteMatchItem]] = None
    model_matches: Optional[List[RouteMatchItem]] = None


class HttpRouteResult(BaseModel):
    domains: List[DomainResult] = Field(default_factory=list)
    description: Optional[str] = None
    match: Optional[RouteMatch] = None
    backend: Optional[dict] = None
    builtin: Optional[bool] = None


# ============== Documents ==============

class ConfigMeta(BaseModel):
    source: str
    type: Optional[str] = None


class APIConfigResult(BaseModel):
    """REST API: the OpenAPI document as a JSON string."""
    kind: str = "api"
    spec: Optional[str] = None
    meta: ConfigMeta


class MCPTransportMode(str, Enum):
    SSE = "SSE"
    STREAMABLE_HTTP = "STREAMABLE_HTTP"


class MCPTransportConfig(BaseModel):
    mcp_server_name: Optional[str] = None
    transport_mode: MCPTransportMode
    url: str


class MCPMeta(BaseModel):
    source: str
    # Higress: OPEN_API / DIRECT_ROUTE / DATABASE; APIG: HTTP / MCP
    create_from_type: Optional[str] = None
    # HTTP or SSE
    protocol: Optional[str] = None


class MCPServerConfig(BaseModel):
    path: Optional[str] = None
    domains: List[DomainResult] = Field(default_factory=list)
    # Registry sources pass their raw server spec through
    raw_config: Optional[Any] = None


class MCPConfigResult(BaseModel):
    kind: str = "mcp"
    mcp_server_name: Optional[str] = None
    mcp_server_config: MCPServerConfig = Field(default_factory=MCPServerConfig)
    tools: Optional[str] = None
    meta: MCPMeta

    def to_transport_config(self) -> Optional[MCPTransportConfig]:
        """Derive the client transport from the first non-intranet domain.

        Returns None when no usable domain is known.
        """
        domain = next(
            (d for d in self.mcp_server_config.domains if not d.is_intranet),
            None,
        )
        if domain is None:
            return None

        url = domain.base_url()
        path = self.mcp_server_config.path
        if path:
            url += path if path.startswith("/") else "/" + path

        mode = (
            MCPTransportMode.SSE
            if (self.meta.protocol or "").lower() == "sse"
            else MCPTransportMode.STREAMABLE_HTTP
        )
        if mode is MCPTransportMode.SSE and not url.endswith("/sse"):
            url = url + "sse" if url.endswith("/") else url + "/sse"

        return MCPTransportConfig(
            mcp_server_name=self.mcp_server_name,
            transport_mode=mode,
            url=url,
        )

    def to_transport_url(self) -> Optional[str]:
        transport = self.to_transport_config()
        return transport.url if transport else None


class AgentAPIConfig(BaseModel):
    agent_protocols: List[str] = Field(default_factory=list)
    routes: List[HttpRouteResult] = Field(default_factory=list)
    # Only set when agent_protocols contains "a2a"
    agent_card: Optional[dict] = None


class AgentConfigResult(BaseModel):
    kind: str = "agent"
    agent_api_config: AgentAPIConfig = Field(default_factory=AgentAPIConfig)
    meta: ConfigMeta


DEFAULT_AI_PROTOCOLS = ["OpenAI/V1"]
DEFAULT_MODEL_CATEGORY = "Text"


class ModelAPIConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    ai_protocols: List[str] = Field(default_factory=lambda: list(DEFAULT_AI_PROTOCOLS))
    model_category: str = DEFAULT_MODEL_CATEGORY
    routes: List[HttpRouteResult] = Field(default_factory=list)


class ModelConfigResult(BaseModel):
    kind: str = "model"
    model_api_config: ModelAPIConfig = Field(default_factory=ModelAPIConfig)
    meta: ConfigMeta

    model_config = ConfigDict(protected_namespaces=())


ConfigDocument = Union[APIConfigResult, MCPConfigResult, AgentConfigResult, ModelConfigResult]

_DOCUMENT_TYPES = {
    "api": APIConfigResult,
    "mcp": MCPConfigResult,
    "agent": AgentConfigResult,
    "model": ModelConfigResult,
}


def dump_config(document: ConfigDocument) -> dict:
    """Serialize a document for the ProductRef JSON column."""
    return document.model_dump(mode="json")


def load_config(data: Optional[dict]) -> Optional[ConfigDocument]:
    """Rebuild a document from its stored form, dispatching on ``kind``."""
    if not data:
        return None
    model = _DOCUMENT_TYPES.get(data.get("kind"))
    if model is None:
        raise ValueError(f"Unknown config document kind: {data.get('kind')!r}")
    return model.model_validate(data)
