# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""ADP AI gateway HTTP client.

Every call is a JSON POST carrying ``gwInstanceId``; responses use the
envelope ``{code, data, message|msg}`` where code 200 is success.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx

from ...errors import VendorError
from ...models.gateway import GatewayVendor
from ...schemas.gateway import AdpAIGatewayConfig
from ..http import default_timeout, vendor_error_from_response, vendor_error_from_transport

logger = logging.getLogger(__name__)

AUTH_SEED_HEADER = "X-Auth-Seed"
VENDOR = GatewayVendor.ADP_AI_GATEWAY.value


def envelope_message(payload: dict) -> str:
    return payload.get("message") or payload.get("msg") or "Unknown error"


class AdpClient:
    """One client per call scope; never shared across calls."""

    def __init__(
        self,
        config: AdpAIGatewayConfig,
        gw_instance_id: Optional[str],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.gw_instance_id = gw_instance_id
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.config.auth_seed:
            headers[AUTH_SEED_HEADER] = self.config.auth_seed
        for header in self.config.auth_headers or []:
            headers[header.key] = header.value
        return headers

    @asynccontextmanager
    async def _get_client(self):
        async with httpx.AsyncClient(
            base_url=self.config.url,
            headers=self._headers(),
            timeout=default_timeout(),
            transport=self._transport,
        ) as client:
            yield client

    async def _call(self, path: str, body: Optional[dict] = None) -> dict:
        """POST and return the raw envelope, whatever its code."""
        payload = dict(body or {})
        payload.setdefault("gwInstanceId", self.gw_instance_id)
        try:
            async with self._get_client() as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise vendor_error_from_transport(VENDOR, e) from e

        if response.is_error:
            raise vendor_error_from_response(VENDOR, response)
        try:
            return response.json()
        except ValueError as e:
            raise VendorError(f"ADP {path} returned a non-JSON body", vendor=VENDOR) from e

    async def _post(self, path: str, body: Optional[dict] = None) -> Any:
        """POST and return ``data``; a non-200 envelope code raises VendorError."""
        envelope = await self._call(path, body)
        code = envelope.get("code")
        if code != 200:
            raise VendorError(
                f"ADP {path} failed: {envelope_message(envelope)}",
                vendor=VENDOR,
                vendor_code=str(code) if code is not None else None,
                status_code=404 if code == 404 else None,
            )
        return envelope.get("data")

    # --- Discovery ---

    async def list_mcp_servers(self, page: int, size: int) -> tuple[list, int]:
        data = await self._post("/mcpServer/listMcpServers", {"current": page, "size": size}) or {}
        return list(data.get("records") or []), int(data.get("total") or 0)

    async def list_model_apis(self, page: int, size: int) -> tuple[list, int]:
        data = await self._post("/modelapi/listModelApis", {"currentPage": page, "size": size}) or {}
        return list(data.get("records") or []), int(data.get("total") or 0)

    async def get_mcp_server(self, name: str) -> dict:
        return await self._post("/mcpServer/getMcpServer", {"mcpServerName": name}) or {}

    async def get_model_api(self, model_api_id: str) -> dict:
        return await self._post("/modelapi/getModelApi", {"modelApiId": model_api_id}) or {}

    async def get_instance_info(self) -> dict:
        return await self._post("/gatewayInstance/getInstanceInfo") or {}

    # --- Applications (consumers) ---

    async def create_app(self, body: dict) -> Any:
        return await self._post("/application/createApp", body)

    async def modify_app(self, body: dict) -> None:
        await self._post("/application/modifyApp", body)

    async def delete_app(self, app_id: str) -> None:
        await self._post("/application/deleteApp", {"appId": app_id})

    async def app_exists(self, app_id: str) -> bool:
        envelope = await self._call("/application/getApp", {"appId": app_id})
        return envelope.get("code") == 200 and envelope.get("data") is not None

    # --- Grants ---

    async def add_mcp_server_consumers(self, server_name: str, consumers: list[str]) -> None:
        await self._post(
            "/mcpServer/addMcpServerConsumers",
            {"mcpServerName": server_name, "consumers": consumers},
        )

    async def delete_mcp_server_consumers(self, server_name: str, consumers: list[str]) -> dict:
        return await self._call(
            "/mcpServer/deleteMcpServerConsumers",
            {"mcpServerName": server_name, "consumers": consumers},
        )

    async def batch_grant_model_api(self, model_api_id: str, consumer_ids: list[str]) -> None:
        await self._post(
            "/modelapi/batchGrantModelApi",
            {"modelApiId": model_api_id, "consumerIds": consumer_ids},
        )

    async def list_model_api_consumers(self, model_api_id: str) -> list:
        data = await self._post(
            "/modelapi/listModelApiConsumers",
            {"modelApiId": model_api_id, "engineType": "higress", "current": 1, "size": 100},
        ) or {}
        return list(data.get("records") or [])

    async def revoke_model_api_grant(self, auth_id: str) -> dict:
        return await self._call("/modelapi/revokeModelApiGrant", {"authId": auth_id})
