# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Behaviour shared by the REST and AI flavours of the cloud gateway.

Consumers and authorization rules live at the account level; every
authorization is scoped to the gateway's environment.
"""

import logging
from typing import Optional

import httpx

from ...errors import ValidationError, VendorError
from ...models.gateway import GatewayRecord
from ...schemas.config_document import DomainResult
from ...schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec
from ...schemas.deployment import ServiceOptions
from ...schemas.gateway import ApigConfig, load_connection_config
from ..gateway_capability import GatewayCapability
from . import mappers
from .client import CONFLICT_AUTHORIZATION_EXISTS, ApigClient

logger = logging.getLogger(__name__)


class ApigCapabilityBase(GatewayCapability):
    """Shared client plumbing, consumers and authorization rules."""

    # Gateway type passed to ListHttpApis
    gateway_type: Optional[str] = None

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, gateway: GatewayRecord) -> ApigClient:
        config: ApigConfig = load_connection_config(gateway)
        return ApigClient(config, vendor=self.vendor.value, transport=self._transport)

    def _gateway_id(self, gateway: GatewayRecord) -> str:
        if not gateway.gateway_ref:
            raise ValidationError(
                f"Gateway '{gateway.id}' has no gateway_ref (cloud gatewayId)",
                details={"gateway_id": gateway.id},
            )
        return gateway.gateway_ref

    async def _environment_id(self, client: ApigClient, gateway: GatewayRecord) -> str:
        environments = await client.list_environments(self._gateway_id(gateway))
        if not environments:
            raise VendorError(
                f"Gateway '{gateway.id}' has no environment",
                vendor=self.vendor.value,
                details={"gateway_id": gateway.id},
            )
        default = next((e for e in environments if e.get("default")), environments[0])
        return default.get("environmentId")

    async def _default_domains(self, client: ApigClient, gateway: GatewayRecord) -> list[DomainResult]:
        return mappers.gateway_domains(await client.get_gateway(self._gateway_id(gateway)))

    async def _domain_ids(self, client: ApigClient, gateway: GatewayRecord, names: list[str]) -> list[str]:
        if not names:
            return []
        wanted = set(names)
        domains = await client.list_domains(self._gateway_id(gateway))
        return [d.get("domainId") for d in domains if d.get("name") in wanted and d.get("domainId")]

    async def _find_http_api_id(
        self,
        client: ApigClient,
        gateway: GatewayRecord,
        name: str,
        api_type: str,
    ) -> Optional[str]:
        items, _ = await client.list_http_apis(
            self._gateway_id(gateway), api_type, 1, 100, name=name, gateway_type=self.gateway_type,
        )
        api = next((a for a in mappers.versioned_apis(items) if a.get("name") == name), None)
        return api.get("httpApiId") if api else None

    async def _ensure_service(
        self,
        client: ApigClient,
        gateway: GatewayRecord,
        default_name: str,
        service: ServiceOptions,
    ) -> str:
        """Reuse a gateway service by id or name, else create it."""
        if service.service_id:
            return service.service_id

        gateway_id = self._gateway_id(gateway)
        name = service.name or default_name
        existing = next(
            (s for s in await client.list_services(gateway_id, name=name) if s.get("name") == name),
            None,
        )
        if existing:
            logger.info(f"Reusing gateway service {name} ({existing.get('serviceId')})")
            return existing.get("serviceId")

        service_type = (service.type or "").upper()
        config: dict = {"name": name}
        if service_type == "AI":
            source_type = "AI"
            config["aiServiceConfig"] = {
                "provider": service.provider,
                "protocols": [service.protocol] if service.protocol else [],
                "address": service.address,
            }
        else:
            source_type = "DNS" if service_type == "DNS" else "VIP"
            address = service.address or ""
            if service.port:
                address = f"{address}:{service.port}"
            config["addresses"] = [address] if address else []

        service_id = await client.create_service({
            "gatewayId": gateway_id,
            "sourceType": source_type,
            "serviceConfigs": [config],
        })
        if not service_id:
            raise VendorError(
                f"Gateway did not return an id for service {name}",
                vendor=self.vendor.value,
            )
        logger.info(f"Created gateway service {name} ({service_id})")
        return service_id

    # --- Consumers ---

    async def create_consumer(self, gateway, consumer: ConsumerSpec, credential: ConsumerCredential) -> str:
        return await self._client(gateway).create_consumer(
            mappers.build_consumer(consumer.consumer_id, credential)
        )

    async def update_consumer(self, gateway, consumer_id, credential) -> None:
        await self._client(gateway).update_consumer(consumer_id, mappers.build_consumer(None, credential))

    async def delete_consumer(self, gateway, consumer_id) -> None:
        try:
            await self._client(gateway).delete_consumer(consumer_id)
        except VendorError as e:
            if not e.is_not_found:
                raise
            logger.info(f"Consumer {consumer_id} already deleted from gateway {gateway.id}")

    async def consumer_exists(self, gateway, consumer_id) -> bool:
        try:
            return bool(await self._client(gateway).get_consumer(consumer_id))
        except VendorError as e:
            if e.is_not_found:
                return False
            raise

    # --- Authorization ---

    def _authorization_target(self, resource_ref: dict) -> tuple[str, str]:
        """(resourceType, resourceId) of the rule for a resource ref."""
        raise NotImplementedError

    async def authorize_consumer(self, gateway, consumer_id, resource_ref) -> AuthRecord:
        resource_type, resource_id = self._authorization_target(resource_ref)
        if not resource_id:
            raise ValidationError(
                f"Resource ref carries no {resource_type} id",
                details={"resource_ref": resource_ref},
            )
        client = self._client(gateway)
        environment_id = await self._environment_id(client, gateway)

        rule = {
            "consumerId": consumer_id,
            "expireMode": "LongTerm",
            "resourceType": resource_type,
            "resourceIdentifier": {"resourceId": resource_id, "environmentId": environment_id},
        }
        try:
            rule_ids = await client.create_authorization_rules([rule])
        except VendorError as e:
            if e.vendor_code != CONFLICT_AUTHORIZATION_EXISTS:
                raise
            logger.info(
                f"Consumer {consumer_id} already authorized to {resource_type}:{resource_id}, "
                f"reusing the existing rule"
            )
            existing = await client.query_authorization_rules(consumer_id, resource_id, resource_type)
            if not existing:
                raise
            rule_ids = [existing[0].get("consumerAuthorizationRuleId")]

        return AuthRecord(
            vendor=self.vendor.value,
            resource_ref=resource_ref,
            data={
                "authorization_rule_ids": rule_ids,
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )

    async def revoke_authorization(self, gateway, consumer_id, auth_record) -> None:
        rule_ids = auth_record.data.get("authorization_rule_ids") or []
        if not rule_ids:
            return
        client = self._client(gateway)
        for rule_id in rule_ids:
            try:
                await client.delete_authorization_rule(consumer_id, rule_id)
            except VendorError as e:
                if not e.is_not_found:
                    raise
                logger.info(f"Authorization rule {rule_id} already deleted")
