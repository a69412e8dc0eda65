# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cloud API gateway OpenAPI client (version 2024-03-27).

Shared by the REST (APIG_API) and AI (APIG_AI) capabilities. Calls are ROA
style JSON requests signed with ACS3-HMAC-SHA256. Responses use the
envelope ``{code, message, data}``; failures carry an error ``code`` such
as ``Conflict.ConsumerAuthorizationForbidden``.
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ...schemas.gateway import ApigConfig
from ..http import default_timeout, vendor_error_from_response, vendor_error_from_transport
from .signer import sign_request

logger = logging.getLogger(__name__)

API_VERSION = "2024-03-27"

# Error code when the consumer already holds an authorization rule
CONFLICT_AUTHORIZATION_EXISTS = "Conflict.ConsumerAuthorizationForbidden"


def _seg(value: str) -> str:
    return quote(value, safe="")


class ApigClient:
    """One client per call scope; never shared across calls."""

    def __init__(
        self,
        config: ApigConfig,
        vendor: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.vendor = vendor
        self._transport = transport

    @property
    def base_url(self) -> str:
        if self.config.endpoint and self.config.endpoint.startswith("http://"):
            return f"http://{self.config.host}"
        return f"https://{self.config.host}"

    @asynccontextmanager
    async def _get_client(self):
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=default_timeout(),
            transport=self._transport,
        ) as client:
            yield client

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Any:
        """Signed call; returns the ``data`` member of the envelope."""
        params = {k: v for k, v in (params or {}).items() if v is not None}
        content = json.dumps(body, ensure_ascii=False).encode("utf-8") if body is not None else b""
        headers = sign_request(
            method, path, params, content,
            host=self.config.host,
            action=action,
            version=API_VERSION,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key,
        )

        try:
            async with self._get_client() as client:
                response = await client.request(
                    method, path, params=params, content=content or None, headers=headers,
                )
        except httpx.HTTPError as e:
            raise vendor_error_from_transport(self.vendor, e) from e

        payload = {}
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = {}

        if response.is_error:
            raise vendor_error_from_response(
                self.vendor,
                response,
                vendor_code=payload.get("code"),
                message=payload.get("message") or None,
            )
        return payload.get("data") or {}

    async def _page(self, path: str, action: str, params: dict) -> tuple[list, int]:
        data = await self._request("GET", path, action, params=params)
        return list(data.get("items") or []), int(data.get("totalSize") or 0)

    # --- Gateway ---

    async def get_gateway(self, gateway_id: str) -> dict:
        return await self._request("GET", f"/v1/gateways/{_seg(gateway_id)}", "GetGateway")

    async def list_environments(self, gateway_id: str) -> list:
        items, _ = await self._page(
            "/v1/environments", "ListEnvironments",
            {"gatewayId": gateway_id, "pageNumber": 1, "pageSize": 100},
        )
        return items

    async def list_domains(self, gateway_id: str) -> list:
        items, _ = await self._page(
            "/v1/domains", "ListDomains",
            {"gatewayId": gateway_id, "pageNumber": 1, "pageSize": 100},
        )
        return items

    # --- Services ---

    async def list_services(self, gateway_id: str, name: Optional[str] = None) -> list:
        items, _ = await self._page(
            "/v1/services", "ListServices",
            {"gatewayId": gateway_id, "name": name, "pageNumber": 1, "pageSize": 100},
        )
        return items

    async def create_service(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/services", "CreateService", body=body)
        service_ids = data.get("serviceIds") or []
        return service_ids[0] if service_ids else data.get("serviceId")

    # --- MCP servers ---

    async def list_mcp_servers(self, gateway_id: str, page: int, size: int, name: Optional[str] = None) -> tuple[list, int]:
        return await self._page(
            "/v1/mcp-servers", "ListMcpServers",
            {"gatewayId": gateway_id, "name": name, "pageNumber": page, "pageSize": size},
        )

    async def get_mcp_server(self, mcp_server_id: str) -> dict:
        return await self._request("GET", f"/v1/mcp-servers/{_seg(mcp_server_id)}", "GetMcpServer")

    async def create_mcp_server(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/mcp-servers", "CreateMcpServer", body=body)
        return data.get("mcpServerId")

    async def update_mcp_server(self, mcp_server_id: str, body: dict) -> None:
        await self._request("PUT", f"/v1/mcp-servers/{_seg(mcp_server_id)}", "UpdateMcpServer", body=body)

    async def deploy_mcp_server(self, mcp_server_id: str) -> None:
        await self._request("PATCH", f"/v1/mcp-servers/{_seg(mcp_server_id)}/deploy", "DeployMcpServer")

    async def undeploy_mcp_server(self, mcp_server_id: str) -> None:
        await self._request("PATCH", f"/v1/mcp-servers/{_seg(mcp_server_id)}/undeploy", "UnDeployMcpServer")

    # --- HTTP APIs ---

    async def list_http_apis(
        self,
        gateway_id: str,
        types: str,
        page: int,
        size: int,
        name: Optional[str] = None,
        gateway_type: Optional[str] = None,
    ) -> tuple[list, int]:
        return await self._page(
            "/v1/http-apis", "ListHttpApis",
            {
                "gatewayId": gateway_id,
                "gatewayType": gateway_type,
                "types": types,
                "name": name,
                "pageNumber": page,
                "pageSize": size,
            },
        )

    async def get_http_api(self, http_api_id: str) -> dict:
        return await self._request("GET", f"/v1/http-apis/{_seg(http_api_id)}", "GetHttpApi")

    async def create_http_api(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/http-apis", "CreateHttpApi", body=body)
        return data.get("httpApiId")

    async def update_http_api(self, http_api_id: str, body: dict) -> None:
        await self._request("PUT", f"/v1/http-apis/{_seg(http_api_id)}", "UpdateHttpApi", body=body)

    async def import_http_api(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/http-apis/import", "ImportHttpApi", body=body)
        return data.get("httpApiId")

    async def export_http_api(self, http_api_id: str) -> dict:
        return await self._request("GET", f"/v1/http-apis/{_seg(http_api_id)}/export", "ExportHttpApi")

    async def deploy_http_api(self, http_api_id: str, body: dict) -> None:
        await self._request("POST", f"/v1/http-apis/{_seg(http_api_id)}/deploy", "DeployHttpApi", body=body)

    async def undeploy_http_api(self, http_api_id: str, body: dict) -> None:
        await self._request("POST", f"/v1/http-apis/{_seg(http_api_id)}/undeploy", "UndeployHttpApi", body=body)

    async def list_http_api_routes(self, http_api_id: str, page: int, size: int) -> tuple[list, int]:
        return await self._page(
            f"/v1/http-apis/{_seg(http_api_id)}/routes", "ListHttpApiRoutes",
            {"pageNumber": page, "pageSize": size},
        )

    async def create_http_api_route(self, http_api_id: str, body: dict) -> Optional[str]:
        data = await self._request(
            "POST", f"/v1/http-apis/{_seg(http_api_id)}/routes", "CreateHttpApiRoute", body=body,
        )
        return data.get("routeId")

    # --- Policies ---

    async def create_policy(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/policies", "CreatePolicy", body=body)
        return data.get("policyId")

    async def create_policy_attachment(self, body: dict) -> None:
        await self._request("POST", "/v1/policy-attachments", "CreatePolicyAttachment", body=body)

    # --- Plugins ---

    async def list_plugin_classes(self, gateway_id: str, name_like: str) -> list:
        items, _ = await self._page(
            "/v1/plugin-classes", "ListPluginClasses",
            {
                "gatewayId": gateway_id,
                "nameLike": name_like,
                "source": "HigressOfficial",
                "gatewayType": "AI",
                "pageNumber": 1,
                "pageSize": 100,
            },
        )
        return items

    async def create_plugin_attachment(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/plugin-attachments", "CreatePluginAttachment", body=body)
        return data.get("pluginAttachmentId")

    async def update_plugin_attachment(self, attachment_id: str, body: dict) -> None:
        await self._request(
            "PUT", f"/v1/plugin-attachments/{_seg(attachment_id)}", "UpdatePluginAttachment", body=body,
        )

    # --- Consumers ---

    async def create_consumer(self, body: dict) -> Optional[str]:
        data = await self._request("POST", "/v1/consumers", "CreateConsumer", body=body)
        return data.get("consumerId")

    async def get_consumer(self, consumer_id: str) -> dict:
        return await self._request("GET", f"/v1/consumers/{_seg(consumer_id)}", "GetConsumer")

    async def update_consumer(self, consumer_id: str, body: dict) -> None:
        await self._request("PUT", f"/v1/consumers/{_seg(consumer_id)}", "UpdateConsumer", body=body)

    async def delete_consumer(self, consumer_id: str) -> None:
        await self._request("DELETE", f"/v1/consumers/{_seg(consumer_id)}", "DeleteConsumer")

    # --- Authorization rules ---

    async def create_authorization_rules(self, rules: list[dict]) -> list[str]:
        data = await self._request(
            "POST", "/v1/authorization-rules", "CreateConsumerAuthorizationRules",
            body={"authorizationRules": rules},
        )
        return list(data.get("consumerAuthorizationRuleIds") or [])

    async def query_authorization_rules(self, consumer_id: str, resource_id: str, resource_type: str) -> list:
        items, _ = await self._page(
            "/v1/authorization-rules", "QueryConsumerAuthorizationRules",
            {
                "consumerId": consumer_id,
                "resourceId": resource_id,
                "resourceType": resource_type,
                "pageNumber": 1,
                "pageSize": 100,
            },
        )
        return items

    async def delete_authorization_rule(self, consumer_id: str, rule_id: str) -> None:
        await self._request(
            "DELETE",
            f"/v1/consumers/{_seg(consumer_id)}/authorization-rules/{_seg(rule_id)}",
            "DeleteConsumerAuthorizationRule",
        )
