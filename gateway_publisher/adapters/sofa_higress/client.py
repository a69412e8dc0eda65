# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SOFA Higress console OpenAPI client.

Every call is a signed form POST to ``{address}/open/api.json`` carrying
the console path (``/sofa-higress{path}?queryType=Himarket``) and a JSON
``payload`` of ``{"params": request}``. Tenant and workspace ids from the
connection config are filled into every request.

Responses use the envelope ``{success, data, resultCode, resultMsg}``;
``data`` holds the console result, itself an envelope whose ``data`` is
JSON-encoded.
"""
import base64
import hashlib
import hmac
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ...errors import VendorError
from ...schemas.gateway import SofaHigressConfig
from ..http import default_timeout, vendor_error_from_response, vendor_error_from_transport

logger = logging.getLogger(__name__)

VENDOR = "SOFA_HIGRESS"

PATH_PREFIX = "/sofa-higress"
PATH_SUFFIX = "?queryType=Himarket"
OPENAPI_VERSION = "1.0"
SIGN_TYPE = "HmacSHA1"


def sign_params(params: dict, secret_key: str) -> str:
    """HmacSHA1 over the sorted, url-encoded form parameters."""
    canonical = "&".join(
        f"{quote(str(k), safe='')}={quote(str(v), safe='')}"
        for k, v in sorted(params.items())
    )
    digest = hmac.new(secret_key.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def _decode(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class SofaHigressClient:
    """One client per call scope; never shared across calls."""

    def __init__(self, config: SofaHigressConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @asynccontextmanager
    async def _get_client(self):
        async with httpx.AsyncClient(
            base_url=self.config.address,
            headers={"Accept": "application/json"},
            timeout=default_timeout(),
            transport=self._transport,
        ) as client:
            yield client

    def _fill_tenant(self, request: dict) -> dict:
        request = dict(request)
        if self.config.tenant_id:
            request["tenantId"] = self.config.tenant_id
        if self.config.workspace_id:
            request["workspaceId"] = self.config.workspace_id
        return request

    def _form(self, path: str, request: dict) -> dict:
        form = {
            "method": "POST",
            "version": OPENAPI_VERSION,
            "path": PATH_PREFIX + path + PATH_SUFFIX,
            "payload": json.dumps({"params": request}, ensure_ascii=False),
            "access_key": self.config.access_key,
            "req_msg_id": uuid.uuid4().hex,
            "req_time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "sign_type": SIGN_TYPE,
        }
        form["sign"] = sign_params(form, self.config.secret_key)
        return form

    async def execute(self, path: str, request: Optional[dict] = None) -> Any:
        """Call a console path and return the decoded result data."""
        request = self._fill_tenant(request or {})
        logger.info(f"Calling SOFA Higress console path {path}")
        try:
            async with self._get_client() as client:
                response = await client.post("/open/api.json", data=self._form(path, request))
        except httpx.HTTPError as e:
            raise vendor_error_from_transport(VENDOR, e) from e

        if response.is_error:
            raise vendor_error_from_response(VENDOR, response)

        envelope = response.json() if response.content else {}
        if not envelope.get("success", False):
            logger.error(
                f"SOFA Higress call {path} failed: "
                f"{envelope.get('resultCode')} {envelope.get('resultMsg')}"
            )
            raise VendorError(
                f"SOFA Higress request failed: {envelope.get('resultMsg')}",
                vendor=VENDOR,
                vendor_code=envelope.get("resultCode"),
                details={"path": path},
            )

        result = _decode(envelope.get("data"))
        if isinstance(result, dict) and "success" in result and "data" in result:
            if not result.get("success"):
                raise VendorError(
                    f"SOFA Higress console error: {result.get('resultMsg')}",
                    vendor=VENDOR,
                    vendor_code=result.get("resultCode"),
                    details={"path": path},
                )
            result = _decode(result.get("data"))
        return result

    async def _page(self, path: str, page: int, size: int, **fields) -> tuple[list, int]:
        request = {
            "pageInfo": {"pageIndex": page, "pageSize": size},
            "fuzzySearch": True,
            **fields,
        }
        result = await self.execute(path, request) or {}
        total = (result.get("pageInfo") or {}).get("total") or 0
        return list(result.get("list") or []), int(total)

    # --- Discovery ---

    async def list_routes(self, page: int, size: int) -> tuple[list, int]:
        return await self._page("/route/list", page, size, type="HTTP")

    async def list_mcp_servers(self, page: int, size: int) -> tuple[list, int]:
        return await self._page("/mcpServer/list", page, size, param={"status": "ONSHELF"})

    async def list_ai_apis(self, page: int, size: int) -> tuple[list, int]:
        return await self._page("/api/list", page, size, type="AI")

    async def get_route(self, route_id: Optional[str] = None, route_name: Optional[str] = None) -> dict:
        return await self.execute("/route/detail", {"routeId": route_id, "routeName": route_name}) or {}

    async def get_mcp_server(self, server_id: str) -> dict:
        return await self.execute("/mcpServer/detail", {"param": {"serverId": server_id}}) or {}

    async def get_mcp_server_by_name(self, name: str) -> dict:
        return await self.execute("/mcpServer/detailByName", {"param": {"name": name}}) or {}

    async def get_api(self, api_id: Optional[str] = None, api_name: Optional[str] = None) -> dict:
        return await self.execute("/api/detail", {"apiId": api_id, "apiName": api_name}) or {}

    async def get_domain(self, domain_name: str) -> Optional[dict]:
        return await self.execute("/domain/detailByName", {"param": {"domainName": domain_name}})

    async def get_gateway_url(self) -> Optional[str]:
        url = await self.execute("/gatewayUrl")
        return url if isinstance(url, str) and url else None

    # --- Consumers ---

    async def list_consumers(self) -> list:
        return list(await self.execute("/consumer/all", {}) or [])

    async def get_consumer_by_name(self, name: str) -> Optional[dict]:
        return await self.execute("/consumer/detailByName", {"param": {"name": name}})

    async def get_consumer(self, consumer_id: str) -> Optional[dict]:
        return await self.execute("/consumer/detail", {"param": {"consumerId": consumer_id}})

    async def create_consumer(self, consumer: dict) -> dict:
        return await self.execute("/consumer/create", {"param": consumer}) or {}

    async def update_consumer(self, consumer: dict) -> None:
        await self.execute("/consumer/update", {"param": consumer})

    async def delete_consumer(self, consumer_id: str) -> None:
        await self.execute("/consumer/delete", {"param": {"consumerId": consumer_id}})

    # --- Subscriptions ---

    async def subscribe_route(self, route_id: str, consumer_id: str) -> None:
        await self.execute("/route/sub", {"routerId": route_id, "consumerId": consumer_id})

    async def unsubscribe_route(self, route_id: str, consumer_id: str) -> None:
        await self.execute("/route/unsub", {"routerId": route_id, "consumerId": consumer_id})

    async def subscribe_mcp_server(self, route_id: str, consumer_id: str) -> None:
        await self.execute("/mcpServer/sub", {"routerId": route_id, "consumerId": consumer_id})

    async def unsubscribe_mcp_server(self, route_id: str, consumer_id: str) -> None:
        await self.execute("/mcpServer/unsub", {"routerId": route_id, "consumerId": consumer_id})

    # --- API definitions ---

    async def publish_definition(self, definition_vo: dict, publish_config: dict) -> dict:
        return await self.execute(
            "/apiDefinition/pub",
            {"apiDefinitionVO": definition_vo, "publishConfig": publish_config},
        ) or {}

    async def unpublish_definition(self, definition_vo: dict, publish_config: dict) -> dict:
        return await self.execute(
            "/apiDefinition/unpub",
            {"apiDefinitionVO": definition_vo, "publishConfig": publish_config},
        ) or {}

    async def is_definition_published(self, definition_vo: dict) -> bool:
        result = await self.execute("/apiDefinition/isPub", {"apiDefinitionVO": definition_vo})
        if isinstance(result, bool):
            return result
        return str(result).strip().lower() == "true"
