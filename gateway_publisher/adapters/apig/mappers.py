# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Mappers between cloud gateway OpenAPI payloads and publisher types."""
import base64
import binascii
import json
import logging
from typing import Optional
from urllib.parse import quote_plus

from ...models.api_definition import APIDefinition
from ...schemas.config_document import (
    DomainResult,
    HttpRouteResult,
    RouteMatch,
    RouteMatchItem,
    RouteMatchPath,
)
from ...schemas.consumer import ConsumerCredential, CredentialSource

logger = logging.getLogger(__name__)

MCP_TYPE = "RealMCP"
MCP_DIRECT_CREATE_FROM = "ApiGatewayProxyMcpHosting"
SINGLE_SERVICE = "SingleService"

DEFAULT_MODEL_PROTOCOLS = ["OpenAI/v1"]
DEFAULT_AGENT_PROTOCOLS = ["Dify"]
DEFAULT_MODEL_CATEGORY = "Text"

_SCENARIO_CATEGORIES = {
    "text-generation": "Text",
}

# Property type -> policy class attached after the API exists
_POLICY_CLASSES = {
    "TIMEOUT": "Timeout",
    "OBSERVABILITY": "Observability",
}
# Handled inline through deployConfigs.policyConfigs for AI APIs
_BUILTIN_AI_POLICIES = {"OBSERVABILITY"}

_CREDENTIAL_SOURCES = {
    CredentialSource.DEFAULT: "Default",
    CredentialSource.HEADER: "Header",
    CredentialSource.QUERY_STRING: "QueryString",
}


def decode_if_base64(value: Optional[str]) -> Optional[str]:
    """Tool configs come back base64 encoded on some gateway versions."""
    if not value:
        return value
    try:
        decoded = base64.b64decode(value, validate=True)
        return decoded.decode("utf-8")
    except (binascii.Error, ValueError):
        return value


def encode_base64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def mcp_match(definition: APIDefinition) -> dict:
    return {"path": {"type": "Prefix", "value": f"/mcp-servers/{quote_plus(definition.name)}"}}


def lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else value


def mcp_domains(server: dict) -> list[DomainResult]:
    return [
        DomainResult(domain=d.get("name"), protocol=lower(d.get("protocol")) or "http")
        for d in server.get("domainInfos") or []
        if d.get("name")
    ]


def gateway_domains(gateway_info: dict) -> list[DomainResult]:
    """Default ingress of the gateway: its load balancer addresses."""
    domains = []
    for lb in gateway_info.get("loadBalancers") or []:
        if not lb.get("address"):
            continue
        ports = lb.get("ports") or []
        http_port = next((p for p in ports if lower(p.get("protocol")) in ("http", "tcp")), None)
        domains.append(DomainResult(
            domain=lb["address"],
            protocol="http",
            port=http_port.get("port") if http_port and http_port.get("port") != 80 else None,
            network_type=lower(lb.get("addressType")),
        ))
    return domains


def api_domains(api_info: dict) -> list[DomainResult]:
    """Custom and sub domains of every environment the API is deployed to."""
    domains = []
    for env in api_info.get("environments") or []:
        for d in env.get("customDomainInfos") or env.get("customDomains") or []:
            domains.append(DomainResult(domain=d.get("name"), protocol=lower(d.get("protocol")) or "http"))
        for d in env.get("subDomains") or []:
            domains.append(DomainResult(
                domain=d.get("name"),
                protocol=lower(d.get("protocol")) or "http",
                network_type=lower(d.get("networkType")),
            ))
    return [d for d in domains if d.domain]


def _items(values: Optional[list]) -> Optional[list[RouteMatchItem]]:
    if not values:
        return None
    return [
        RouteMatchItem(
            name=v.get("name"),
            type=v.get("type"),
            value=v.get("value"),
            case_sensitive=v.get("caseSensitive"),
        )
        for v in values
    ]


def http_route_to_result(route: dict, domains: list[DomainResult]) -> HttpRouteResult:
    match = route.get("match") or {}
    path = match.get("path") or {}
    return HttpRouteResult(
        domains=domains,
        description=route.get("description"),
        match=RouteMatch(
            methods=match.get("methods"),
            path=RouteMatchPath(
                value=path.get("value"),
                type=path.get("type"),
                case_sensitive=not match["ignoreUriCase"] if "ignoreUriCase" in match else None,
            ) if path else None,
            headers=_items(match.get("headers")),
            query_params=_items(match.get("queryParams")),
        ),
        backend=route.get("backend"),
        builtin=route.get("builtin"),
    )


def versioned_apis(items: list) -> list[dict]:
    """Flatten ListHttpApis items into their versioned HTTP APIs."""
    apis = []
    for item in items:
        versions = item.get("versionedHttpApis")
        apis.extend(versions if versions else [item])
    return apis


def model_category(definition: APIDefinition) -> str:
    scenario = definition.metadata_.get("scenario")
    if not scenario:
        return DEFAULT_MODEL_CATEGORY
    category = _SCENARIO_CATEGORIES.get(str(scenario).lower())
    if category is None:
        logger.warning(f"Unknown model scenario {scenario}, defaulting to {DEFAULT_MODEL_CATEGORY}")
        return DEFAULT_MODEL_CATEGORY
    return category


def _property_type(prop: dict) -> str:
    return str(prop.get("type") or "").upper()


def policy_configs(definition: APIDefinition) -> list[dict]:
    configs = []
    for prop in definition.properties:
        if _property_type(prop) == "OBSERVABILITY":
            configs.append({"type": "AiStatistics", "enable": bool(prop.get("enabled", False))})
    return configs


def attachable_policies(definition: APIDefinition) -> list[tuple[str, dict]]:
    """(policy class, property) pairs attached separately after publish."""
    policies = []
    for prop in definition.properties:
        prop_type = _property_type(prop)
        if prop_type in _BUILTIN_AI_POLICIES:
            continue
        class_name = _POLICY_CLASSES.get(prop_type)
        if class_name:
            policies.append((class_name, prop))
    return policies


def mcp_plugin_config(definition: APIDefinition) -> str:
    """Base64 mcp-server plugin config describing the tools of the definition."""
    tools = [
        dict(e.get("config") or {}, name=e.get("name"), description=e.get("description"))
        for e in definition.endpoints
        if (e.get("type") or "MCP_TOOL") == "MCP_TOOL"
    ]
    config = {"server": {"name": definition.name}, "tools": tools}
    return encode_base64(json.dumps(config, ensure_ascii=False))


def build_consumer(consumer_name: Optional[str], credential: ConsumerCredential) -> dict:
    body: dict = {"enable": True, "description": "consumer from the API marketplace"}
    if consumer_name:
        body["name"] = consumer_name

    api_key = credential.api_key_config
    if api_key is not None:
        body["apikeyIdentityConfig"] = {
            "type": "Apikey",
            "apikeySource": {
                "source": _CREDENTIAL_SOURCES.get(api_key.source, "Default"),
                "value": api_key.key or "Authorization",
            },
            "credentials": [{"apikey": key, "generateMode": "Custom"} for key in credential.api_keys],
        }
    if credential.hmac_config is not None:
        body["akSkIdentityConfigs"] = [{
            "type": "AkSk",
            "generateMode": "Custom",
            "ak": credential.hmac_config.access_key,
            "sk": credential.hmac_config.secret_key,
        }]
    return body


def endpoint_route_match(endpoint: dict) -> Optional[dict]:
    """Route match of an HTTP endpoint, or None when it has no path."""
    config = endpoint.get("config") or {}
    match_config = config.get("matchConfig") or config.get("match") or {}
    path = match_config.get("path") or {}
    if not path.get("value"):
        return None
    match = {
        "path": {"type": path.get("type") or "Prefix", "value": path["value"]},
        "ignoreUriCase": False,
    }
    if match_config.get("methods"):
        match["methods"] = match_config["methods"]
    return match


def build_openapi_document(definition: APIDefinition) -> dict:
    """OpenAPI document of a REST definition: the stored one, else one built from its endpoints."""
    stored = (definition.spec or {}).get("openapi")
    if isinstance(stored, str):
        return json.loads(stored)
    if isinstance(stored, dict):
        return stored

    paths: dict = {}
    for endpoint in definition.endpoints:
        config = endpoint.get("config") or {}
        path = config.get("path")
        if not path:
            continue
        method = (config.get("method") or "GET").lower()
        paths.setdefault(path, {})[method] = {
            "operationId": endpoint.get("name"),
            "summary": endpoint.get("description") or endpoint.get("name"),
            "responses": {"200": {"description": "OK"}},
        }
    return {
        "openapi": "3.0.1",
        "info": {"title": definition.name, "version": definition.version or "1.0.0"},
        "paths": paths,
    }
