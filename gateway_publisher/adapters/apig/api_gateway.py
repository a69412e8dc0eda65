# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cloud API gateway, REST flavour (APIG_API).

REST APIs are published by importing their OpenAPI document and deploying
the resulting HTTP API to the gateway's default environment.
"""

import json
import logging

from ...errors import VendorError
from ...models.api_definition import APIDefinition, APIType
from ...models.gateway import GatewayVendor
from ...schemas.config_document import APIConfigResult, ConfigDocument, ConfigMeta
from ...schemas.deployment import DeploymentOptions
from ...schemas.gateway import Page, ResourceKind, ResourceSummary
from . import mappers
from .base import ApigCapabilityBase

logger = logging.getLogger(__name__)

REST_API_TYPES = "Rest,Http"


class ApigApiCapability(ApigCapabilityBase):
    vendor = GatewayVendor.APIG_API
    supported_api_types = (APIType.REST_API,)
    gateway_type = "API"

    # --- Discovery ---

    async def list_resources(self, gateway, kind, page=1, size=20):
        kind = ResourceKind(kind)
        if kind != ResourceKind.REST_API:
            return await super().list_resources(gateway, kind, page, size)

        client = self._client(gateway)
        items, total = await client.list_http_apis(
            self._gateway_id(gateway), REST_API_TYPES, page, size, gateway_type=self.gateway_type,
        )
        summaries = [
            ResourceSummary(
                kind=kind,
                name=api.get("name"),
                id=api.get("httpApiId"),
                description=api.get("description"),
                resource_ref={"api_id": api.get("httpApiId"), "api_name": api.get("name")},
                extra={"type": api.get("type"), "base_path": api.get("basePath")},
            )
            for api in mappers.versioned_apis(items)
        ]
        return Page(items=summaries, total=total, page=page, size=size)

    async def resolve_config(self, gateway, resource_ref, api_type) -> ConfigDocument:
        if APIType(api_type) != APIType.REST_API:
            return await super().resolve_config(gateway, resource_ref, api_type)

        exported = await self._client(gateway).export_http_api(resource_ref["api_id"])
        spec = mappers.decode_if_base64(exported.get("specContent"))
        return APIConfigResult(
            spec=spec,
            meta=ConfigMeta(source=self.vendor.value, type=exported.get("specType") or "REST"),
        )

    # --- Publishing ---

    async def publish(self, gateway, definition: APIDefinition, options: DeploymentOptions) -> dict:
        client = self._client(gateway)
        gateway_id = self._gateway_id(gateway)
        environment_id = await self._environment_id(client, gateway)

        document = mappers.build_openapi_document(definition)
        if options.base_path:
            document.setdefault("x-base-path", options.base_path)

        existing_id = await self._find_http_api_id(client, gateway, definition.name, REST_API_TYPES)
        body = {
            "gatewayId": gateway_id,
            "name": definition.name,
            "description": definition.description,
            "specContent": mappers.encode_base64(json.dumps(document, ensure_ascii=False)),
            "strategy": "ExistFirst" if existing_id else "SpecFirst",
            "targetHttpApiId": existing_id,
            "basePath": options.effective_base_path,
            "version": definition.version,
        }
        api_id = await client.import_http_api({k: v for k, v in body.items() if v is not None})
        api_id = api_id or existing_id
        if not api_id:
            raise VendorError(
                f"Gateway did not return an id for REST API {definition.name}",
                vendor=self.vendor.value,
            )

        deploy = {"environmentId": environment_id}
        domain_ids = await self._domain_ids(client, gateway, options.domain_names)
        if domain_ids:
            deploy["customDomainIds"] = domain_ids
        if options.service and options.service.is_native:
            deploy["serviceId"] = await self._ensure_service(client, gateway, definition.name, options.service)
        await client.deploy_http_api(api_id, deploy)

        logger.info(f"Published REST API {definition.name} ({api_id}) to gateway {gateway.id}")
        return {"api_id": api_id, "api_name": definition.name}

    async def unpublish(self, gateway, definition, options) -> None:
        client = self._client(gateway)
        api_id = await self._find_http_api_id(client, gateway, definition.name, REST_API_TYPES)
        if not api_id:
            logger.warning(f"REST API {definition.name} not found on gateway {gateway.id}, nothing to unpublish")
            return
        environment_id = await self._environment_id(client, gateway)
        try:
            await client.undeploy_http_api(api_id, {"environmentId": environment_id})
        except VendorError as e:
            if not e.is_not_found:
                raise
            logger.warning(f"REST API {definition.name} already undeployed from gateway {gateway.id}")

    async def is_published(self, gateway, definition) -> bool:
        client = self._client(gateway)
        return bool(await self._find_http_api_id(client, gateway, definition.name, REST_API_TYPES))

    # --- Authorization ---

    def _authorization_target(self, resource_ref: dict) -> tuple[str, str]:
        return "RestApi", resource_ref.get("api_id")
