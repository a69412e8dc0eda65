# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Higress console REST client.

Envelopes: lists are ``{"data": [...], "total": n}``, single objects are
``{"data": {...}}``. Authentication is HTTP basic auth with the console
credentials.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ...errors import VendorError
from ...schemas.gateway import HigressConfig
from ..http import default_timeout, vendor_error_from_response, vendor_error_from_transport

logger = logging.getLogger(__name__)

VENDOR = "HIGRESS"


class HigressClient:
    """One client per call scope; never shared across calls."""

    def __init__(self, config: HigressConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @asynccontextmanager
    async def _get_client(self):
        async with httpx.AsyncClient(
            base_url=self.config.address,
            auth=(self.config.username, self.config.password),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=default_timeout(),
            transport=self._transport,
        ) as client:
            yield client

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            async with self._get_client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise vendor_error_from_transport(VENDOR, e) from e

        if response.is_error:
            raise vendor_error_from_response(VENDOR, response)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def _get_data(self, path: str) -> dict:
        return (await self._request("GET", path)).get("data") or {}

    async def _list(self, path: str, page: int, size: int) -> tuple[list, int]:
        result = await self._request("GET", path, params={"pageNum": page, "pageSize": size})
        return list(result.get("data") or []), int(result.get("total") or 0)

    # --- MCP servers ---

    async def list_mcp_servers(self, page: int, size: int) -> tuple[list, int]:
        return await self._list("/v1/mcpServer", page, size)

    async def get_mcp_server(self, name: str) -> dict:
        return await self._get_data(f"/v1/mcpServer/{quote(name, safe='')}")

    async def put_mcp_server(self, server: dict) -> dict:
        """Create or update an MCP server (the console upserts by name)."""
        return await self._request("PUT", "/v1/mcpServer", json=server)

    async def delete_mcp_server(self, name: str) -> None:
        await self._request("DELETE", f"/v1/mcpServer/{quote(name, safe='')}")

    async def add_mcp_consumers(self, server_name: str, consumers: list[str]) -> None:
        await self._request(
            "PUT", "/v1/mcpServer/consumers/",
            json={"mcpServerName": server_name, "consumers": consumers},
        )

    async def remove_mcp_consumers(self, server_name: str, consumers: list[str]) -> None:
        await self._request(
            "DELETE", "/v1/mcpServer/consumers/",
            json={"mcpServerName": server_name, "consumers": consumers},
        )

    # --- AI routes ---

    async def list_ai_routes(self, page: int, size: int) -> tuple[list, int]:
        return await self._list("/v1/ai/routes", page, size)

    async def get_ai_route(self, name: str) -> dict:
        return await self._get_data(f"/v1/ai/routes/{quote(name, safe='')}")

    async def create_ai_route(self, route: dict) -> dict:
        return await self._request("POST", "/v1/ai/routes", json=route)

    async def update_ai_route(self, route: dict) -> dict:
        return await self._request("PUT", f"/v1/ai/routes/{quote(route['name'], safe='')}", json=route)

    async def delete_ai_route(self, name: str) -> None:
        await self._request("DELETE", f"/v1/ai/routes/{quote(name, safe='')}")

    # --- Domains ---

    async def get_domain(self, domain: str) -> Optional[dict]:
        try:
            return await self._get_data(f"/v1/domains/{quote(domain, safe='')}")
        except VendorError as e:
            if e.is_not_found:
                return None
            raise

    # --- Consumers ---

    async def get_consumer(self, name: str) -> dict:
        return await self._get_data(f"/v1/consumers/{quote(name, safe='')}")

    async def create_consumer(self, consumer: dict) -> None:
        await self._request("POST", "/v1/consumers", json=consumer)

    async def update_consumer(self, name: str, consumer: dict) -> None:
        await self._request("PUT", f"/v1/consumers/{quote(name, safe='')}", json=consumer)

    async def delete_consumer(self, name: str) -> None:
        await self._request("DELETE", f"/v1/consumers/{quote(name, safe='')}")
