# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""MCP client used to read the live tool list of a published MCP server.

Speaks MCP JSON-RPC over HTTP (initialize, then tools/list). Servers that
answer in SSE framing (``data: {...}``) are handled; a pure SSE transport
is attempted the same way, as most gateways also accept POSTed JSON-RPC
on the SSE endpoint.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, List
from uuid import uuid4

import httpx

from ..config import settings
from ..errors import VendorError
from ..schemas.config_document import MCPTransportConfig, MCPTransportMode

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SESSION_HEADER = "Mcp-Session-Id"


@dataclass
class MCPTool:
    """Tool discovered on an MCP server."""
    name: str
    description: Optional[str] = None
    input_schema: Optional[dict] = None


class MCPClientService:
    """JSON-RPC client for MCP servers behind a gateway."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.MCP_CLIENT_TIMEOUT_SECONDS
        self._transport = transport

    def _rpc(self, method: str, params: Optional[dict] = None) -> dict:
        return {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": str(uuid4()),
        }

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict:
        """Decode a JSON-RPC reply sent either as JSON or as SSE frames.

        Raises:
            VendorError: the body is not a JSON-RPC object
        """
        content_type = response.headers.get("content-type", "")
        try:
            if "text/event-stream" not in content_type:
                body = response.json()
            else:
                body = {}
                for line in response.text.splitlines():
                    if line.startswith("data:"):
                        payload = line[len("data:"):].strip()
                        if payload:
                            body = json.loads(payload)
                            break
        except ValueError as e:
            raise VendorError(
                f"MCP server returned a non JSON-RPC reply ({content_type or 'no content-type'})",
                vendor="MCP",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise VendorError("MCP server returned a non JSON-RPC reply", vendor="MCP")
        return body

    async def _call(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict,
        headers: dict,
        params: dict,
    ) -> httpx.Response:
        response = await client.post(url, json=body, headers=headers, params=params)
        if response.status_code >= 400:
            raise VendorError(
                f"MCP {body['method']} failed: HTTP {response.status_code}",
                vendor="MCP",
                status_code=response.status_code,
            )
        return response

    async def list_tools(
        self,
        transport_config: MCPTransportConfig,
        headers: Optional[dict] = None,
        query_params: Optional[dict] = None,
    ) -> List[MCPTool]:
        """Initialize a session and list the server's tools."""
        request_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **(headers or {}),
        }
        params = dict(query_params or {})
        url = transport_config.url
        if transport_config.transport_mode is MCPTransportMode.SSE:
            logger.debug(f"Listing tools of SSE server {url} over JSON-RPC POST")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport, follow_redirects=True
            ) as client:
                init_response = await self._call(
                    client,
                    url,
                    self._rpc("initialize", {
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {},
                        "clientInfo": {"name": "gateway-publisher", "version": settings.VERSION},
                    }),
                    request_headers,
                    params,
                )
                session_id = init_response.headers.get(SESSION_HEADER)
                if session_id:
                    request_headers[SESSION_HEADER] = session_id

                tools_response = await self._call(
                    client, url, self._rpc("tools/list"), request_headers, params
                )
                result = self._parse_body(tools_response)
        except httpx.HTTPError as e:
            raise VendorError(f"MCP server {url} unreachable: {e}", vendor="MCP") from e

        if "error" in result:
            raise VendorError(f"MCP error: {result['error']}", vendor="MCP")

        tools_data = (result.get("result") or {}).get("tools") or []
        return [
            MCPTool(
                name=t["name"],
                description=t.get("description"),
                input_schema=t.get("inputSchema"),
            )
            for t in tools_data
            if isinstance(t, dict) and t.get("name")
        ]


def _tool_args(input_schema: Optional[dict]) -> List[dict[str, Any]]:
    properties = (input_schema or {}).get("properties") or {}
    required = set((input_schema or {}).get("required") or [])
    args = []
    for name, prop in properties.items():
        arg = {"name": name, "required": name in required}
        for key in ("description", "type", "default", "enum", "items", "properties"):
            if isinstance(prop, dict) and key in prop:
                arg[key] = prop[key]
        args.append(arg)
    return args


def tools_to_manifest(server_name: Optional[str], tools: List[MCPTool]) -> Optional[str]:
    """Render discovered tools in the stored manifest format (JSON string)."""
    if not tools:
        return None
    manifest = {
        "server": {"name": server_name},
        "tools": [
            {
                "name": tool.name,
                "description": tool.description,
                "args": _tool_args(tool.input_schema),
            }
            for tool in tools
        ],
    }
    return json.dumps(manifest, ensure_ascii=False)
