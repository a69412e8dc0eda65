# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Config Sync - keeps ProductRef in step with the latest ACTIVE deployment.

Resolves the vendor resource of an ACTIVE DeploymentRecord into a
vendor-neutral ConfigDocument and stores it on the product's ProductRef.
This service is the only writer of the product_refs table.

Triggers:
- after a successful publish (deployment job)
- explicit ``reload(product_id)``
- ``get_resolved_config(product_id)`` when the product is not marked as
  recently synced; the reload then runs in the background
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..adapters.registry import CapabilityRegistry
from ..errors import GatewayNotFoundError, ProductRefNotFoundError, PublisherError
from ..models.api_definition import APIType
from ..models.deployment import PublishStatus
from ..models.gateway import GatewayRecord
from ..models.product_ref import ProductRef
from ..repositories.deployment import DeploymentRepository
from ..repositories.gateway import GatewayRepository
from ..repositories.product_ref import ProductRefRepository
from ..schemas.config_document import ConfigDocument, MCPConfigResult, dump_config
from ..workers.deployment_worker import DeploymentWorkerPool
from .cache_service import SyncMarker
from .snapshot import read_snapshot

logger = logging.getLogger(__name__)


class ConfigSyncService:
    """Resolves and stores the serving-time configuration of products"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: CapabilityRegistry,
        marker: SyncMarker,
        pool: DeploymentWorkerPool,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._marker = marker
        self._pool = pool

    async def resolve(
        self,
        gateway: GatewayRecord,
        resource_ref: dict,
        api_type: APIType,
    ) -> ConfigDocument:
        """Resolve a resource; MCP documents get the live tool manifest merged in."""
        capability = self._registry.for_gateway(gateway)
        document = await capability.resolve_config(gateway, resource_ref, api_type)

        if isinstance(document, MCPConfigResult):
            try:
                tools = await capability.fetch_mcp_tools(gateway, document)
            except Exception as e:
                logger.warning(
                    f"Skipping MCP tool discovery for {document.mcp_server_name} on gateway {gateway.id}: {e}",
                    exc_info=not isinstance(e, PublisherError),
                )
            else:
                if tools:
                    document.tools = tools
        return document

    async def sync_deployment(self, deployment_id: str) -> Optional[ProductRef]:
        """Sync the product of an ACTIVE deployment record.

        Returns None when the record is no longer the latest ACTIVE one of
        its (API, gateway) pair by the time the document is written.
        """
        async with self._session_factory() as session:
            record = await DeploymentRepository(session).get_by_id(deployment_id)
            if record is None or record.status is not PublishStatus.ACTIVE:
                logger.info(f"Deployment {deployment_id} is not ACTIVE, skipping config sync")
                return None
            gateway = await GatewayRepository(session).get_by_id(record.gateway_id)
            if gateway is None:
                raise GatewayNotFoundError(record.gateway_id)
            definition, _ = read_snapshot(record.snapshot)

        document = await self.resolve(gateway, record.resource_ref or {}, definition.api_type)
        product_id = definition.product_key

        async with self._session_factory() as session:
            latest = await DeploymentRepository(session).get_latest(record.api_definition_id, record.gateway_id)
            if latest is None or latest.id != record.id or latest.status is not PublishStatus.ACTIVE:
                logger.info(f"Deployment {deployment_id} was superseded during config sync, not storing")
                return None

            ref = await ProductRefRepository(session).get_or_create(product_id, record.api_definition_id)
            ref.api_definition_id = record.api_definition_id
            ref.gateway_id = gateway.id
            ref.vendor = gateway.vendor.value
            ref.api_type = definition.api_type.value
            ref.resource_ref = record.resource_ref
            ref.config = dump_config(document)
            ref.stale = False
            ref.synced_at = datetime.utcnow()
            await session.commit()

        await self._marker.refresh(product_id)
        logger.info(f"Synced product {product_id} from gateway {gateway.id} ({gateway.vendor.value})")
        return ref

    async def clear_product(self, product_id: str, gateway_id: str) -> None:
        """Clear a product after its resource was unpublished from ``gateway_id``."""
        async with self._session_factory() as session:
            ref = await ProductRefRepository(session).get(product_id)
            if ref is None:
                return
            if ref.gateway_id not in (None, gateway_id):
                logger.info(f"Product {product_id} now points at gateway {ref.gateway_id}, not clearing")
                return
            ref.clear()
            ref.synced_at = datetime.utcnow()
            await session.commit()

        await self._marker.clear(product_id)
        logger.info(f"Cleared product {product_id} after unpublish from gateway {gateway_id}")

    async def reload(self, product_id: str) -> ProductRef:
        """Re-resolve a product from its latest ACTIVE deployment.

        Raises:
            ProductRefNotFoundError: the product was never synced
        """
        async with self._session_factory() as session:
            ref = await ProductRefRepository(session).get(product_id)
            if ref is None:
                raise ProductRefNotFoundError(product_id)
            latest = await DeploymentRepository(session).get_latest_per_gateway(ref.api_definition_id)

        active = next((r for r in latest if r.status is PublishStatus.ACTIVE), None)
        if active is None:
            if not ref.stale:
                await self.clear_product(product_id, ref.gateway_id)
            await self._marker.refresh(product_id)
            return await self._get_ref(product_id)

        synced = await self.sync_deployment(active.id)
        return synced or await self._get_ref(product_id)

    async def get_resolved_config(self, product_id: str) -> ProductRef:
        """Return the stored ProductRef; schedule a reload when not recently synced.

        Raises:
            ProductRefNotFoundError: the product was never synced
        """
        ref = await self._get_ref(product_id)

        generation = await self._marker.mark(product_id)
        if generation is not None:
            try:
                await self._pool.submit(
                    lambda: self._background_reload(product_id, generation),
                    name=f"reload-product:{product_id}",
                )
            except PublisherError as e:
                logger.warning(f"Could not schedule reload of product {product_id}: {e}")
                await self._marker.clear(product_id)
        return ref

    async def _background_reload(self, product_id: str, generation: int) -> None:
        if not await self._marker.is_current(product_id, generation):
            logger.debug(f"Reload of product {product_id} superseded, skipping")
            return
        try:
            await self.reload(product_id)
        except PublisherError as e:
            logger.warning(f"Background reload of product {product_id} failed: {e}")

    async def _get_ref(self, product_id: str) -> ProductRef:
        async with self._session_factory() as session:
            ref = await ProductRefRepository(session).get(product_id)
        if ref is None:
            raise ProductRefNotFoundError(product_id)
        return ref
