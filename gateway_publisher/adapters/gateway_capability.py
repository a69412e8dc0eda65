# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Abstract Gateway Capability contract.

One implementation per gateway vendor. The rest of the system never
branches on vendor type: it resolves a capability through the
CapabilityRegistry and calls this contract.

Every operation a vendor cannot perform raises UnsupportedOperationError;
nothing silently no-ops. Implementations hold no per-call state: every
vendor call opens its own HTTP client and releases it on every exit path.
"""

from abc import ABC
from typing import ClassVar, Optional

from ..errors import UnsupportedOperationError, ValidationError
from ..models.api_definition import APIDefinition, APIType
from ..models.gateway import GatewayRecord, GatewayVendor
from ..schemas.config_document import ConfigDocument, MCPConfigResult
from ..schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from ..schemas.deployment import DeploymentOptions
from ..schemas.gateway import Page, ResourceKind, ResourceSummary


class GatewayCapability(ABC):
    """Vendor gateway contract: discovery, config resolution, consumers, publishing."""

    vendor: ClassVar[GatewayVendor]
    # API types this vendor can publish; empty means discovery only
    supported_api_types: ClassVar[tuple[APIType, ...]] = ()

    def supports_api_type(self, api_type: APIType) -> bool:
        return APIType(api_type) in self.supported_api_types

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(self.vendor.value, operation)

    # --- Discovery ---

    async def list_resources(
        self,
        gateway: GatewayRecord,
        kind: ResourceKind,
        page: int = 1,
        size: int = 20,
    ) -> Page[ResourceSummary]:
        """List gateway resources of one kind."""
        raise self._unsupported(f"list_resources({ResourceKind(kind).value})")

    async def resolve_config(
        self,
        gateway: GatewayRecord,
        resource_ref: dict,
        api_type: APIType,
    ) -> ConfigDocument:
        """Turn a vendor resource into a vendor-neutral config document."""
        raise self._unsupported(f"resolve_config({APIType(api_type).value})")

    async def fetch_mcp_tools(
        self,
        gateway: GatewayRecord,
        mcp_config: MCPConfigResult,
    ) -> Optional[str]:
        """Live tool manifest of an MCP resource, or None when unknown."""
        raise self._unsupported("fetch_mcp_tools")

    # --- Consumers ---

    async def create_consumer(
        self,
        gateway: GatewayRecord,
        consumer: ConsumerSpec,
        credential: ConsumerCredential,
    ) -> str:
        """Create the consumer on the gateway and return its gateway-side id."""
        raise self._unsupported("create_consumer")

    async def update_consumer(
        self,
        gateway: GatewayRecord,
        consumer_id: str,
        credential: ConsumerCredential,
    ) -> None:
        raise self._unsupported("update_consumer")

    async def delete_consumer(self, gateway: GatewayRecord, consumer_id: str) -> None:
        raise self._unsupported("delete_consumer")

    async def consumer_exists(self, gateway: GatewayRecord, consumer_id: str) -> bool:
        raise self._unsupported("consumer_exists")

    async def authorize_consumer(
        self,
        gateway: GatewayRecord,
        consumer_id: str,
        resource_ref: dict,
    ) -> AuthRecord:
        """Grant a consumer access to a resource.

        Upsert semantics: when the vendor reports the grant already exists,
        the existing authorization is returned.
        """
        raise self._unsupported("authorize_consumer")

    async def revoke_authorization(
        self,
        gateway: GatewayRecord,
        consumer_id: str,
        auth_record: AuthRecord,
    ) -> None:
        """Remove a grant. A grant that no longer exists counts as revoked."""
        raise self._unsupported("revoke_authorization")

    # --- Publishing ---

    def validate_publish_options(
        self,
        definition: APIDefinition,
        options: DeploymentOptions,
    ) -> None:
        """Reject options before any deployment record is written.

        The default only checks the API type; vendors extend it.
        """
        if not self.supported_api_types:
            raise self._unsupported("publish")
        if not self.supports_api_type(definition.api_type):
            raise ValidationError(
                f"{self.vendor.value} gateways cannot publish {APIType(definition.api_type).value}",
                code="UNSUPPORTED_API_TYPE",
                details={
                    "vendor": self.vendor.value,
                    "api_type": APIType(definition.api_type).value,
                    "supported_api_types": [t.value for t in self.supported_api_types],
                },
            )

    async def publish(
        self,
        gateway: GatewayRecord,
        definition: APIDefinition,
        options: DeploymentOptions,
    ) -> dict:
        """Create or update the gateway resource and return its resource ref."""
        raise self._unsupported("publish")

    async def unpublish(
        self,
        gateway: GatewayRecord,
        definition: APIDefinition,
        options: DeploymentOptions,
    ) -> None:
        raise self._unsupported("unpublish")

    async def is_published(self, gateway: GatewayRecord, definition: APIDefinition) -> bool:
        raise self._unsupported("is_published")
