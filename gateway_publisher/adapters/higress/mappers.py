# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Mappers between Higress console payloads and publisher types."""
import json
from typing import Any, Optional

from ...models.api_definition import APIDefinition
from ...schemas.config_document import (
    DomainResult,
    HttpRouteResult,
    RouteMatch,
    RouteMatchItem,
    RouteMatchPath,
)
from ...schemas.consumer import ApiKeyCredential, ConsumerCredential
from ...schemas.deployment import DeploymentOptions

DIRECT_ROUTE = "DIRECT_ROUTE"
OPEN_API = "OPEN_API"

_SOURCE_MAPPING = {
    "default": "BEARER",
    "header": "HEADER",
    "querystring": "QUERY",
}


def map_source(source: Optional[str]) -> Optional[str]:
    """Portal credential source -> Higress key-auth source."""
    if not source:
        return None
    return _SOURCE_MAPPING.get(source.lower(), source)


def build_consumer(consumer_id: str, credential: ConsumerCredential) -> dict:
    api_key: Optional[ApiKeyCredential] = credential.api_key_config
    credentials = []
    if api_key is not None:
        credentials.append({
            "type": "key-auth",
            "source": map_source(api_key.source.value),
            "key": api_key.key,
            "values": credential.api_keys,
        })
    return {"name": consumer_id, "credentials": credentials}


def credential_context(consumer: dict) -> tuple[dict, dict]:
    """Headers and query params that authenticate as ``consumer``.

    Uses the consumer's first key-auth credential.
    """
    headers: dict[str, str] = {}
    query: dict[str, str] = {}
    credentials = consumer.get("credentials") or []
    if not credentials:
        return headers, query
    credential = credentials[0]
    values = credential.get("values") or []
    if not values:
        return headers, query

    api_key = values[0]
    source = (credential.get("source") or "").upper()
    key = credential.get("key")
    if source == "BEARER":
        headers["Authorization"] = f"Bearer {api_key}"
    elif source == "QUERY":
        query[key] = api_key
    else:
        headers[key or "x-api-key"] = api_key
    return headers, query


def domain_protocol(domain_config: Optional[dict]) -> str:
    """``http`` when HTTPS is off or the domain is unknown to the console."""
    if not domain_config or (domain_config.get("enableHttps") or "").lower() == "off":
        return "http"
    return "https"


def _item(predicate: dict, name: Optional[str] = None) -> RouteMatchItem:
    return RouteMatchItem(
        name=name or predicate.get("key"),
        type=predicate.get("matchType"),
        value=predicate.get("matchValue"),
        case_sensitive=predicate.get("caseSensitive"),
    )


def ai_route_to_http_route(route: dict, domains: list[DomainResult]) -> HttpRouteResult:
    path_predicate = route.get("pathPredicate")
    path = None
    if path_predicate:
        path = RouteMatchPath(
            value=path_predicate.get("matchValue"),
            type=path_predicate.get("matchType"),
            case_sensitive=path_predicate.get("caseSensitive"),
        )
    return HttpRouteResult(
        domains=domains,
        match=RouteMatch(
            methods=["POST"],
            path=path,
            headers=[_item(p) for p in route.get("headerPredicates") or []] or None,
            query_params=[_item(p) for p in route.get("urlParamPredicates") or []] or None,
            model_matches=[_item(p, "model") for p in route.get("modelPredicates") or []] or None,
        ),
    )


def mcp_server_type(definition: APIDefinition) -> str:
    bridge = (definition.metadata_.get("mcpBridgeType") or "").upper()
    return DIRECT_ROUTE if bridge == "DIRECT" else OPEN_API


def _services(options: DeploymentOptions) -> list[dict]:
    service = options.service
    if service is None or not service.name:
        return []
    entry: dict[str, Any] = {"name": service.name, "weight": 100}
    if service.port:
        entry["port"] = service.port
    return [entry]


def build_mcp_server(definition: APIDefinition, options: DeploymentOptions) -> dict:
    server_type = mcp_server_type(definition)
    server: dict[str, Any] = {
        "name": definition.name,
        "description": definition.description,
        "type": server_type,
        "domains": options.domain_names,
        "services": _services(options),
        "consumerAuthInfo": {"type": "key-auth", "enable": False, "allowedConsumers": []},
    }
    if server_type == DIRECT_ROUTE:
        server["directRouteConfig"] = {
            "path": options.effective_base_path,
            "transportType": (options.transport or "SSE").upper(),
        }
    else:
        tools = [e for e in definition.endpoints if (e.get("type") or "MCP_TOOL") == "MCP_TOOL"]
        server["rawConfigurations"] = json.dumps(
            {
                "server": {"name": definition.name},
                "tools": [dict(e.get("config") or {}, name=e.get("name")) for e in tools],
            },
            ensure_ascii=False,
        )
    return server


def build_ai_route(definition: APIDefinition, options: DeploymentOptions) -> dict:
    service = options.service
    provider = (service.provider or service.name) if service else None
    return {
        "name": definition.name,
        "domains": options.domain_names,
        "pathPredicate": {
            "matchType": "PRE",
            "matchValue": options.effective_base_path,
            "caseSensitive": False,
        },
        "upstreams": [{"provider": provider, "weight": 100, "modelMapping": {}}] if provider else [],
        "authConfig": {"enabled": False, "allowedCredentialTypes": ["key-auth"], "allowedConsumers": []},
    }
