# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Publish/Unpublish orchestration.

Submit calls validate, write a pending DeploymentRecord and return it;
the vendor call runs as a job on the DeploymentWorkerPool, which moves
the record to its terminal state.

    PUBLISHING   -> ACTIVE | PUBLISH_FAILED
    UNPUBLISHING -> INACTIVE | UNPUBLISH_FAILED

Rules enforced at submit time, per API definition:
- at most one record per (API, gateway) is processing
- at most one gateway holds an ACTIVE or processing record
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.registry import CapabilityRegistry
from ..config import settings
from ..errors import (
    APIDefinitionNotFoundError,
    ConflictError,
    DeploymentNotFoundError,
    GatewayNotFoundError,
    PublisherError,
    PublisherErrorCode,
    ValidationError,
)
from ..logging_config import bind_job_context, clear_job_context
from ..models.api_definition import APIDefinition, APIDefinitionStatus
from ..models.deployment import DeploymentRecord, PublishStatus
from ..repositories.api_definition import APIDefinitionRepository
from ..repositories.deployment import DeploymentRepository
from ..repositories.gateway import GatewayRepository
from ..schemas.deployment import DeploymentOptions
from ..workers.deployment_worker import DeploymentWorkerPool
from .config_sync_service import ConfigSyncService
from .snapshot import build_snapshot, read_snapshot

logger = logging.getLogger(__name__)

STALE_ERROR_MESSAGE = "timed out waiting for gateway"

# Records of one pair are ordered by created_at; keep it strictly increasing
_CREATED_AT_STEP = timedelta(microseconds=1)


class PublishService:
    """Entry point for publishing API definitions to vendor gateways"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: CapabilityRegistry,
        pool: DeploymentWorkerPool,
        config_sync: ConfigSyncService,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._pool = pool
        self._config_sync = config_sync
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ============== Submit ==============

    async def submit_publish(
        self,
        api_definition_id: str,
        gateway_id: str,
        options: Optional[DeploymentOptions] = None,
        description: Optional[str] = None,
    ) -> DeploymentRecord:
        """Publish an API definition to a gateway.

        Returns the new PUBLISHING record, or the current ACTIVE record when
        the API is already published on that gateway.

        Raises:
            NotFoundError: unknown API definition or gateway
            ValidationError: options rejected by the vendor capability
            ConflictError: in-flight deployment, or ACTIVE on another gateway
        """
        options = options or DeploymentOptions()

        async with self._locks[api_definition_id]:
            async with self._session_factory() as session:
                definition = await APIDefinitionRepository(session).get_by_id(api_definition_id)
                if definition is None:
                    raise APIDefinitionNotFoundError(api_definition_id)
                gateway = await GatewayRepository(session).get_by_id(gateway_id)
                if gateway is None:
                    raise GatewayNotFoundError(gateway_id)

                deployments = DeploymentRepository(session)
                latest_per_gateway = await deployments.get_latest_per_gateway(api_definition_id)
                latest_here: Optional[DeploymentRecord] = None
                for latest in latest_per_gateway:
                    if latest.gateway_id == gateway_id:
                        latest_here = latest
                    if not latest.status.is_active_or_processing:
                        continue
                    if latest.gateway_id == gateway_id:
                        if latest.status.is_active:
                            logger.info(f"API {api_definition_id} already ACTIVE on gateway {gateway_id}")
                            return latest
                        raise self._in_progress(latest)
                    raise ConflictError(
                        f"API '{api_definition_id}' is published on {latest.gateway_id}",
                        details={
                            "api_definition_id": api_definition_id,
                            "gateway_id": gateway_id,
                            "active_gateway_id": latest.gateway_id,
                            "deployment_id": latest.id,
                        },
                    )

                self._registry.for_gateway(gateway).validate_publish_options(definition, options)
                self._pool.check_available()

                record = await deployments.create(DeploymentRecord(
                    api_definition_id=api_definition_id,
                    gateway_id=gateway_id,
                    status=PublishStatus.PUBLISHING,
                    snapshot=build_snapshot(definition, options),
                    description=description,
                    created_at=self._next_created_at(latest_here),
                ))
                await session.commit()

        logger.info(f"Submitted publish {record.id}: API {api_definition_id} -> gateway {gateway_id}")
        await self._enqueue(record, self._run_publish, "publish")
        return record

    async def submit_unpublish(
        self,
        api_definition_id: str,
        deployment_id: str,
        description: Optional[str] = None,
    ) -> DeploymentRecord:
        """Unpublish the resource created by a deployment.

        The options and definition captured by that deployment are replayed,
        whatever the definition looks like today.

        Raises:
            DeploymentNotFoundError: unknown deployment
            ValidationError: DEPLOYMENT_MISMATCH, or unreadable snapshot
            ConflictError: the (API, gateway) pair has a job in flight
        """
        async with self._locks[api_definition_id]:
            async with self._session_factory() as session:
                deployments = DeploymentRepository(session)
                source = await deployments.get_by_id(deployment_id)
                if source is None:
                    raise DeploymentNotFoundError(deployment_id)
                if source.api_definition_id != api_definition_id:
                    raise ValidationError(
                        f"Deployment '{deployment_id}' does not belong to API '{api_definition_id}'",
                        code=PublisherErrorCode.DEPLOYMENT_MISMATCH,
                        details={
                            "deployment_id": deployment_id,
                            "api_definition_id": api_definition_id,
                            "owner_api_definition_id": source.api_definition_id,
                        },
                    )

                latest = await deployments.get_latest(api_definition_id, source.gateway_id)
                if latest is not None and latest.status.is_processing:
                    raise self._in_progress(latest)

                # Fail now on a snapshot the job could not replay
                read_snapshot(source.snapshot)

                gateway = await GatewayRepository(session).get_by_id(source.gateway_id)
                if gateway is None:
                    raise GatewayNotFoundError(source.gateway_id)
                self._registry.for_gateway(gateway)
                self._pool.check_available()

                record = await deployments.create(DeploymentRecord(
                    api_definition_id=api_definition_id,
                    gateway_id=source.gateway_id,
                    status=PublishStatus.UNPUBLISHING,
                    snapshot=source.snapshot,
                    resource_ref=source.resource_ref,
                    description=description,
                    created_at=self._next_created_at(latest),
                ))
                await session.commit()

        logger.info(f"Submitted unpublish {record.id} of deployment {deployment_id} on gateway {record.gateway_id}")
        await self._enqueue(record, self._run_unpublish, "unpublish")
        return record

    async def delete_api_definition(self, api_definition_id: str) -> None:
        """Delete an API definition that is not published anywhere.

        Raises:
            APIDefinitionNotFoundError: unknown API definition
            ConflictError: API_IN_USE while a gateway is active or processing
        """
        async with self._locks[api_definition_id]:
            async with self._session_factory() as session:
                definitions = APIDefinitionRepository(session)
                definition = await definitions.get_by_id(api_definition_id)
                if definition is None:
                    raise APIDefinitionNotFoundError(api_definition_id)

                latest_per_gateway = await DeploymentRepository(session).get_latest_per_gateway(api_definition_id)
                busy = [r for r in latest_per_gateway if r.status.is_active_or_processing]
                if busy:
                    raise ConflictError(
                        f"API '{api_definition_id}' is still deployed on {', '.join(r.gateway_id for r in busy)}",
                        code=PublisherErrorCode.API_IN_USE,
                        details={
                            "api_definition_id": api_definition_id,
                            "deployments": [{"id": r.id, "gateway_id": r.gateway_id, "status": r.status.value} for r in busy],
                        },
                    )

                await definitions.delete(definition)
                await session.commit()

        logger.info(f"Deleted API definition {api_definition_id}")

    # ============== Queries ==============

    async def get_deployment_status(self, deployment_id: str) -> DeploymentRecord:
        async with self._session_factory() as session:
            record = await DeploymentRepository(session).get_by_id(deployment_id)
        if record is None:
            raise DeploymentNotFoundError(deployment_id)
        return record

    async def list_deployments(
        self,
        api_definition_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[DeploymentRecord], int]:
        async with self._session_factory() as session:
            return await DeploymentRepository(session).list_by_api(api_definition_id, page, page_size)

    # ============== Maintenance ==============

    async def reconcile_stale_records(self, max_age_minutes: Optional[int] = None) -> int:
        """Fail PUBLISHING/UNPUBLISHING records older than the threshold.

        Returns the number of records failed.
        """
        max_age = max_age_minutes if max_age_minutes is not None else settings.STALE_DEPLOYMENT_MINUTES
        cutoff = datetime.utcnow() - timedelta(minutes=max_age)

        async with self._session_factory() as session:
            deployments = DeploymentRepository(session)
            reconciled = 0
            for record in await deployments.list_processing_older_than(cutoff):
                pending = record.status
                failed = (
                    PublishStatus.PUBLISH_FAILED
                    if pending is PublishStatus.PUBLISHING
                    else PublishStatus.UNPUBLISH_FAILED
                )
                if await deployments.update_status(record, failed, error_message=STALE_ERROR_MESSAGE):
                    reconciled += 1
                    logger.warning(f"Deployment {record.id} stuck in {pending.value} since {record.created_at}, failed")
            await session.commit()

        if reconciled:
            logger.info(f"Reconciled {reconciled} stale deployment records")
        return reconciled

    # ============== Jobs ==============

    async def _enqueue(self, record: DeploymentRecord, runner, operation: str) -> None:
        deployment_id = record.id
        try:
            await self._pool.submit(lambda: runner(deployment_id), name=f"{operation}:{deployment_id}")
        except PublisherError as e:
            # The record is committed; fail it rather than leave it pending
            logger.error(f"Could not queue {operation} job {deployment_id}: {e}")
            async with self._session_factory() as session:
                deployments = DeploymentRepository(session)
                pending = await deployments.get_by_id(deployment_id)
                if pending is not None and pending.status.is_processing:
                    failed = (
                        PublishStatus.PUBLISH_FAILED
                        if pending.status is PublishStatus.PUBLISHING
                        else PublishStatus.UNPUBLISH_FAILED
                    )
                    await deployments.update_status(pending, failed, error_message=e.message)
                    await session.commit()
            raise

    async def _run_publish(self, deployment_id: str) -> None:
        """Background publish job. Never raises."""
        try:
            async with self._session_factory() as session:
                record = await self._load_pending(session, deployment_id, PublishStatus.PUBLISHING)
                if record is None:
                    return
                bind_job_context(deployment_id=deployment_id, gateway_id=record.gateway_id)
                try:
                    gateway, definition, options = await self._load_job_inputs(session, record)
                    capability = self._registry.for_gateway(gateway)
                    logger.info(f"Publishing {definition.api_type.value} '{definition.name}' to {gateway.vendor.value}")
                    resource_ref = await capability.publish(gateway, definition, options)
                except Exception as e:
                    logger.error(f"Publish {deployment_id} failed: {e}", exc_info=not isinstance(e, PublisherError))
                    if not await DeploymentRepository(session).update_status(
                        record, PublishStatus.PUBLISH_FAILED, error_message=str(e) or type(e).__name__,
                    ):
                        self._log_already_final(record)
                    await session.commit()
                    return

                if not await DeploymentRepository(session).update_status(
                    record, PublishStatus.ACTIVE, resource_ref=resource_ref or {},
                ):
                    self._log_already_final(record)
                    await session.commit()
                    return
                await self._set_definition_status(session, record.api_definition_id, APIDefinitionStatus.PUBLISHED)
                await session.commit()
                logger.info(f"Deployment {deployment_id} is ACTIVE: {resource_ref}")

            try:
                await self._config_sync.sync_deployment(deployment_id)
            except Exception as e:
                logger.error(f"Config sync after publish {deployment_id} failed: {e}", exc_info=not isinstance(e, PublisherError))
        except Exception as e:
            logger.error(f"Publish job {deployment_id} crashed: {e}", exc_info=True)
        finally:
            clear_job_context()

    async def _run_unpublish(self, deployment_id: str) -> None:
        """Background unpublish job. Never raises."""
        try:
            async with self._session_factory() as session:
                record = await self._load_pending(session, deployment_id, PublishStatus.UNPUBLISHING)
                if record is None:
                    return
                bind_job_context(deployment_id=deployment_id, gateway_id=record.gateway_id)
                try:
                    gateway, definition, options = await self._load_job_inputs(session, record)
                    capability = self._registry.for_gateway(gateway)
                    logger.info(f"Unpublishing {definition.api_type.value} '{definition.name}' from {gateway.vendor.value}")
                    await capability.unpublish(gateway, definition, options)
                except Exception as e:
                    logger.error(f"Unpublish {deployment_id} failed: {e}", exc_info=not isinstance(e, PublisherError))
                    if not await DeploymentRepository(session).update_status(
                        record, PublishStatus.UNPUBLISH_FAILED, error_message=str(e) or type(e).__name__,
                    ):
                        self._log_already_final(record)
                    await session.commit()
                    return

                if not await DeploymentRepository(session).update_status(record, PublishStatus.INACTIVE):
                    self._log_already_final(record)
                    await session.commit()
                    return
                await self._set_definition_status(session, record.api_definition_id, APIDefinitionStatus.DRAFT)
                await session.commit()
                logger.info(f"Deployment {deployment_id} is INACTIVE")

            try:
                await self._config_sync.clear_product(definition.product_key, record.gateway_id)
            except Exception as e:
                logger.error(f"Clearing product after unpublish {deployment_id} failed: {e}", exc_info=True)
        except Exception as e:
            logger.error(f"Unpublish job {deployment_id} crashed: {e}", exc_info=True)
        finally:
            clear_job_context()

    @staticmethod
    def _log_already_final(record: DeploymentRecord) -> None:
        logger.warning(
            f"Deployment {record.id} was moved to {record.status.value} while its job ran; keeping it"
        )

    async def _load_pending(
        self,
        session: AsyncSession,
        deployment_id: str,
        expected: PublishStatus,
    ) -> Optional[DeploymentRecord]:
        record = await DeploymentRepository(session).get_by_id(deployment_id)
        if record is None:
            logger.warning(f"Deployment {deployment_id} vanished before its job ran")
            return None
        if record.status is not expected:
            logger.warning(f"Deployment {deployment_id} is {record.status.value}, expected {expected.value}; skipping")
            return None
        return record

    async def _load_job_inputs(self, session: AsyncSession, record: DeploymentRecord):
        gateway = await GatewayRepository(session).get_by_id(record.gateway_id)
        if gateway is None:
            raise GatewayNotFoundError(record.gateway_id)
        definition, options = read_snapshot(record.snapshot)
        return gateway, definition, options

    @staticmethod
    async def _set_definition_status(
        session: AsyncSession,
        api_definition_id: str,
        status: APIDefinitionStatus,
    ) -> Optional[APIDefinition]:
        definitions = APIDefinitionRepository(session)
        definition = await definitions.get_by_id(api_definition_id)
        if definition is None:
            return None
        return await definitions.set_status(definition, status)

    @staticmethod
    def _next_created_at(latest: Optional[DeploymentRecord]) -> datetime:
        now = datetime.utcnow()
        if latest is not None and latest.created_at is not None and now <= latest.created_at:
            return latest.created_at + _CREATED_AT_STEP
        return now

    @staticmethod
    def _in_progress(record: DeploymentRecord) -> ConflictError:
        return ConflictError(
            f"Deployment {record.id} is {record.status.value} on gateway {record.gateway_id}",
            code=PublisherErrorCode.DEPLOYMENT_IN_PROGRESS,
            details={
                "deployment_id": record.id,
                "gateway_id": record.gateway_id,
                "status": record.status.value,
            },
        )
