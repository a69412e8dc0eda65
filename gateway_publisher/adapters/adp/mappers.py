# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Mappers between ADP AI gateway payloads and publisher types."""
from typing import Optional

from ...schemas.config_document import DomainResult, HttpRouteResult, RouteMatch, RouteMatchPath
from ...schemas.consumer import ConsumerCredential

API_KEY_AUTH_TYPE = 5
CONSUMER_DESCRIPTION = "Consumer managed by Portal"

_PROTOCOLS = {
    "OPENAI_COMPATIBLE": "OpenAI/V1",
}


def map_protocol(protocol: Optional[str]) -> Optional[str]:
    if not protocol:
        return protocol
    return _PROTOCOLS.get(protocol.upper(), protocol)


def access_mode_domains(instance: dict) -> list[DomainResult]:
    """Ingress of a gateway instance from its first access mode.

    LoadBalancer external IPs on port 80, else NodePort ``ip:nodePort``
    pairs, else bare external IPs on port 80.
    """
    modes = instance.get("accessMode") or []
    if not modes:
        return []
    mode = modes[0]
    mode_type = (mode.get("accessModeType") or "").lower()
    external_ips = [ip for ip in mode.get("externalIps") or [] if ip]

    if mode_type == "loadbalancer" and external_ips:
        return [DomainResult(domain=ip, protocol="http", port=80) for ip in external_ips]

    if mode_type == "nodeport":
        domains = []
        for ip in mode.get("ips") or []:
            if not ip:
                continue
            for mapping in mode.get("ports") or []:
                parts = (mapping or "").split(":")
                if len(parts) >= 2:
                    node_port = parts[1].split("/")[0]
                    domains.append(DomainResult(domain=ip, protocol="http", port=int(node_port)))
        if domains:
            return domains

    return [DomainResult(domain=ip, protocol="http", port=80) for ip in external_ips]


def service_domains(server: dict) -> list[DomainResult]:
    return [
        DomainResult(domain=s.get("name"), protocol="http", port=s.get("port"))
        for s in server.get("services") or []
        if s.get("name")
    ]


def name_domains(names: Optional[list]) -> list[DomainResult]:
    domains = []
    for name in names or []:
        host, _, port = name.partition(":")
        domains.append(DomainResult(domain=host, protocol="http", port=int(port) if port.isdigit() else None))
    return domains


def model_routes(model_api: dict, domains: list[DomainResult]) -> list[HttpRouteResult]:
    base_path = model_api.get("basePath") or ""
    return [
        HttpRouteResult(
            domains=domains,
            description=model_api.get("description"),
            match=RouteMatch(
                methods=["POST"],
                path=RouteMatchPath(value=base_path + path, type="Exact"),
            ),
            builtin=False,
        )
        for path in model_api.get("pathList") or []
    ]


def build_app(app_name: str, credential: ConsumerCredential) -> dict:
    body = {
        "appName": app_name,
        "authType": API_KEY_AUTH_TYPE,
        "apiKeyLocationType": "BEARER",
    }
    if credential.api_keys:
        body["key"] = credential.api_keys[0]
    return body


def build_app_update(app_id: str, credential: ConsumerCredential) -> dict:
    body = build_app(app_id, credential)
    body.update({
        "appId": app_id,
        "authTypeName": "API_KEY",
        "description": CONSUMER_DESCRIPTION,
        "enable": True,
        "groups": ["true"],
    })
    return body


def is_not_found_envelope(envelope: dict) -> bool:
    message = envelope.get("message") or envelope.get("msg") or ""
    return (
        envelope.get("code") == 404
        or "not found" in message.lower()
        or "NotFound" in message
        or "不存在" in message
    )
