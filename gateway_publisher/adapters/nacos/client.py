# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Nacos v3 admin API client for the AI registry (MCP servers and A2A agents).

Responses use the envelope ``{code, message, data}`` with code 0 on
success. When credentials are configured every call first logs in and
sends the returned access token.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx

from ...errors import VendorError
from ...models.gateway import GatewayVendor
from ...schemas.gateway import NacosConfig
from ..http import default_timeout, vendor_error_from_response, vendor_error_from_transport

logger = logging.getLogger(__name__)

VENDOR = GatewayVendor.NACOS.value


class NacosClient:
    """One client per call scope; never shared across calls."""

    def __init__(
        self,
        config: NacosConfig,
        namespace: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.namespace = namespace or config.namespace
        self._transport = transport

    @asynccontextmanager
    async def _get_client(self):
        async with httpx.AsyncClient(
            base_url=self.config.server_url,
            headers={"Accept": "application/json"},
            timeout=default_timeout(),
            transport=self._transport,
        ) as client:
            yield client

    async def _login(self, client: httpx.AsyncClient) -> Optional[str]:
        if not self.config.username:
            return None
        response = await client.post(
            "/nacos/v3/auth/user/login",
            data={"username": self.config.username, "password": self.config.password or ""},
        )
        if response.is_error:
            raise vendor_error_from_response(VENDOR, response, message="Nacos login failed")
        return response.json().get("accessToken")

    async def _get(self, path: str, params: dict) -> Any:
        params = {k: v for k, v in params.items() if v is not None}
        params.setdefault("namespaceId", self.namespace)
        try:
            async with self._get_client() as client:
                token = await self._login(client)
                headers = {"accessToken": token} if token else {}
                response = await client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise vendor_error_from_transport(VENDOR, e) from e

        payload = {}
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
        if response.is_error:
            raise vendor_error_from_response(
                VENDOR, response,
                vendor_code=str(payload.get("code")) if payload.get("code") is not None else None,
                message=payload.get("message") or None,
            )
        if payload.get("code") not in (0, 200, None):
            raise VendorError(
                f"Nacos {path} failed: {payload.get('message')}",
                vendor=VENDOR,
                vendor_code=str(payload.get("code")),
            )
        return payload.get("data")

    async def _page(self, path: str, page: int, size: int) -> tuple[list, int]:
        data = await self._get(path, {"pageNo": page, "pageSize": size}) or {}
        return list(data.get("pageItems") or []), int(data.get("totalCount") or 0)

    async def list_mcp_servers(self, page: int, size: int) -> tuple[list, int]:
        return await self._page("/nacos/v3/admin/ai/mcp/list", page, size)

    async def get_mcp_server(self, name: Optional[str] = None, mcp_id: Optional[str] = None) -> dict:
        return await self._get("/nacos/v3/admin/ai/mcp", {"mcpName": name, "mcpId": mcp_id}) or {}

    async def list_agents(self, page: int, size: int) -> tuple[list, int]:
        return await self._page("/nacos/v3/admin/ai/a2a/list", page, size)

    async def get_agent_card(self, agent_name: str) -> dict:
        return await self._get("/nacos/v3/admin/ai/a2a", {"agentName": agent_name}) or {}
