# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Mappers between SOFA Higress console payloads and publisher types."""
from typing import Optional

from ...models.api_definition import APIDefinition, APIDefinitionStatus, APIType
from ...schemas.config_document import (
    DomainResult,
    HttpRouteResult,
    RouteMatch,
    RouteMatchItem,
    RouteMatchPath,
)
from ...schemas.consumer import ConsumerCredential
from ...schemas.deployment import DeploymentOptions
from ..higress.mappers import map_source

CONSUMER_DESCRIPTION = "consumer from the API marketplace"

# Publish result id: REST -> route id, MCP -> server id, Model -> api id
RESOURCE_REF_KEYS = {
    APIType.REST_API: ("api_id", "api_name"),
    APIType.MCP_SERVER: ("server_id", "mcp_server_name"),
    APIType.MODEL_API: ("model_api_id", "model_api_name"),
}


def resource_ref_for(definition: APIDefinition, resource_id: Optional[str]) -> dict:
    id_key, name_key = RESOURCE_REF_KEYS[APIType(definition.api_type)]
    return {id_key: resource_id, name_key: definition.name}


def build_consumer(
    consumer_name: Optional[str],
    credential: ConsumerCredential,
    consumer_id: Optional[str] = None,
) -> dict:
    """Console consumer. The console binds a single key per consumer."""
    api_key = credential.api_key_config
    consumer = {
        "consumerId": consumer_id,
        "name": consumer_name,
        "description": CONSUMER_DESCRIPTION,
        "status": True,
    }
    if api_key is not None:
        consumer["keyAuthConfig"] = {
            "enabled": True,
            "source": map_source(api_key.source.value),
            "key": api_key.key,
            "value": api_key.api_key,
        }
    return consumer


def key_auth_context(key_auth: Optional[dict]) -> tuple[dict, dict]:
    """Headers and query params for a console keyAuthConfig."""
    headers: dict[str, str] = {}
    query: dict[str, str] = {}
    if not key_auth or not key_auth.get("value"):
        return headers, query
    api_key = key_auth["value"]
    source = (key_auth.get("source") or "").upper()
    key = key_auth.get("key")
    if source == "BEARER":
        headers["Authorization"] = f"Bearer {api_key}"
    elif source == "QUERY":
        query[key] = api_key
    else:
        headers[key or "x-api-key"] = api_key
    return headers, query


def _predicate(predicate: Optional[dict]) -> Optional[RouteMatchPath]:
    if not predicate:
        return None
    return RouteMatchPath(
        value=predicate.get("matchValue"),
        type=predicate.get("matchType"),
        case_sensitive=predicate.get("caseSensitive"),
    )


def _keyed(predicates: Optional[list]) -> Optional[list[RouteMatchItem]]:
    if not predicates:
        return None
    return [
        RouteMatchItem(
            name=p.get("key"),
            type=p.get("matchType"),
            value=p.get("matchValue"),
            case_sensitive=p.get("caseSensitive"),
        )
        for p in predicates
    ]


def route_to_http_route(route: dict, domains: list[DomainResult]) -> HttpRouteResult:
    match_config = route.get("routeMatchConfig") or {}
    path = _predicate(match_config.get("path"))
    if path is None and route.get("path"):
        path = RouteMatchPath(value=route["path"], type="PRE")
    return HttpRouteResult(
        domains=domains,
        description=route.get("description"),
        match=RouteMatch(
            methods=route.get("methods"),
            path=path,
            headers=_keyed(match_config.get("headers")),
            query_params=_keyed(match_config.get("urlParams")),
        ),
    )


def build_definition_vo(definition: APIDefinition) -> dict:
    return {
        "apiDefinitionId": definition.id,
        "name": definition.name,
        "description": definition.description,
        "type": APIType(definition.api_type).value,
        "status": APIDefinitionStatus(definition.status or APIDefinitionStatus.DRAFT).value,
        "version": definition.version,
        "endpoints": definition.endpoints,
        "metadata": definition.metadata_,
        "properties": definition.properties,
    }


def build_publish_config(options: DeploymentOptions) -> dict:
    config: dict = {
        "basePath": options.effective_base_path,
        "domains": [d.model_dump(exclude_none=True) for d in options.domains],
    }
    if options.service is not None:
        service = options.service
        config["serviceConfig"] = {
            "serviceId": service.service_id,
            "name": service.name,
            "address": service.address,
            "port": service.port,
            "protocol": service.protocol,
            "meta": service.meta,
        }
    extras = options.model_extra or {}
    if extras:
        config["extra"] = extras
    return config
