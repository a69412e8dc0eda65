# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Consumer management and authorization on vendor gateways.

Thin routing layer over the GatewayCapability consumer operations:
looks the gateway up, picks the vendor capability and logs the outcome.
Idempotency (authorize upsert, revoke of a missing grant) is handled by
each vendor capability.
"""
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..adapters.gateway_capability import GatewayCapability
from ..adapters.registry import CapabilityRegistry
from ..errors import GatewayNotFoundError
from ..models.gateway import GatewayRecord
from ..repositories.gateway import GatewayRepository
from ..schemas.consumer import AuthRecord, ConsumerCredential, ConsumerSpec

logger = logging.getLogger(__name__)


class ConsumerService:
    """Service for gateway consumers and their resource grants"""

    def __init__(self, session_factory: async_sessionmaker, registry: CapabilityRegistry):
        self._session_factory = session_factory
        self._registry = registry

    async def _resolve(self, gateway_id: str) -> tuple[GatewayRecord, GatewayCapability]:
        async with self._session_factory() as session:
            gateway = await GatewayRepository(session).get_by_id(gateway_id)
        if gateway is None:
            raise GatewayNotFoundError(gateway_id)
        return gateway, self._registry.for_gateway(gateway)

    async def create_consumer(
        self,
        gateway_id: str,
        consumer: ConsumerSpec,
        credential: ConsumerCredential,
    ) -> str:
        gateway, capability = await self._resolve(gateway_id)
        consumer_id = await capability.create_consumer(gateway, consumer, credential)
        logger.info(f"Created consumer {consumer.name} ({consumer_id}) on gateway {gateway_id}")
        return consumer_id

    async def update_consumer(self, gateway_id: str, consumer_id: str, credential: ConsumerCredential) -> None:
        gateway, capability = await self._resolve(gateway_id)
        await capability.update_consumer(gateway, consumer_id, credential)
        logger.info(f"Updated consumer {consumer_id} on gateway {gateway_id}")

    async def delete_consumer(self, gateway_id: str, consumer_id: str) -> None:
        gateway, capability = await self._resolve(gateway_id)
        await capability.delete_consumer(gateway, consumer_id)
        logger.info(f"Deleted consumer {consumer_id} on gateway {gateway_id}")

    async def consumer_exists(self, gateway_id: str, consumer_id: str) -> bool:
        gateway, capability = await self._resolve(gateway_id)
        return await capability.consumer_exists(gateway, consumer_id)

    async def authorize(self, gateway_id: str, consumer_id: str, resource_ref: dict) -> AuthRecord:
        """Grant a consumer access to a gateway resource.

        Re-authorizing an already granted pair returns the existing grant.
        """
        gateway, capability = await self._resolve(gateway_id)
        record = await capability.authorize_consumer(gateway, consumer_id, resource_ref)
        logger.info(f"Authorized consumer {consumer_id} on gateway {gateway_id}: {record.data}")
        return record

    async def revoke(self, gateway_id: str, consumer_id: str, auth_record: AuthRecord) -> None:
        """Remove a grant; a grant that is already gone counts as revoked."""
        gateway, capability = await self._resolve(gateway_id)
        await capability.revoke_authorization(gateway, consumer_id, auth_record)
        logger.info(f"Revoked authorization of consumer {consumer_id} on gateway {gateway_id}")
